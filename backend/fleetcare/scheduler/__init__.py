HEARTBEAT_KEY = "fleetcare:scheduler:heartbeat"
HEARTBEAT_TTL = 180  # 秒
