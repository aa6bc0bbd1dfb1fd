"""系統別点検結果 (所見) の正規化と表示テキスト生成

保存は構造化リスト [{system, status, note}]。テキストは表示用に都度生成する。
"""
from typing import Optional

from fleetcare.core.exceptions import FindingNoteRequired, InvalidFinding, ValidationFailed

SYSTEM_CATALOGUE = [
    "Engine Management",
    "Transmission Management",
    "Braking Management",
    "Suspension Management",
    "Lighting Management",
    "Electrical Management",
    "Body Management",
    "Steering Management",
    "Coolant Management",
    "Lubrication Management",
    "Drive Assist Management",
    "Air Conditioning Management",
    "Heater Management",
    "Supplemental Restraint System",
    "Dashboard Warning System",
    "Major Service System",
    "Minor Service System",
]

FINDING_STATUSES = ("pass", "needs_attention", "urgent_attention")

STATUS_LABELS = {
    "pass": "PASS",
    "needs_attention": "NEEDS ATTENTION",
    "urgent_attention": "URGENT ATTENTION",
}

INSPECTION_STATUSES = ("good", "fair", "needs_attention", "critical")


def system_label(system: str) -> str:
    return system if system.endswith("System") else f"{system} System"


def normalize_system_findings(items: Optional[list[dict]]) -> list[dict]:
    """系統別結果を検証してカタログ順に並べる

    pass 以外は「必要な対応」メモ必須 (空なら FindingNoteRequired)。
    pass のメモは保存しない。
    """
    seen = set()
    result = []
    for item in items or []:
        system = (item.get("system") or "").strip()
        status = item.get("status")
        note = (item.get("note") or "").strip()

        if system not in SYSTEM_CATALOGUE:
            raise InvalidFinding(f"不明な点検系統です: {system}", system=system)
        if system in seen:
            raise InvalidFinding(f"点検系統が重複しています: {system}", system=system)
        if status not in FINDING_STATUSES:
            raise InvalidFinding(f"点検結果が不正です: {status}", system=system)
        if status != "pass" and not note:
            raise FindingNoteRequired(f"{system_label(system)}: 必要な対応を入力してください", system=system)

        seen.add(system)
        result.append({"system": system, "status": status, "note": note if status != "pass" else ""})

    result.sort(key=lambda f: SYSTEM_CATALOGUE.index(f["system"]))
    return result


def render_findings_text(system_findings: Optional[list[dict]], narrative: Optional[str] = None) -> str:
    """表示用テキスト: 系統ごとの行 + 自由記述 (空行区切り)"""
    lines = []
    for f in system_findings or []:
        line = f"{system_label(f['system'])}: {STATUS_LABELS[f['status']]}"
        if f["status"] != "pass" and f.get("note"):
            line += f" - Needed: {f['note']}"
        lines.append(line)
    if narrative and narrative.strip():
        lines.append(narrative.strip())
    return "\n\n".join(lines)


def attention_summary(system_findings: Optional[list[dict]]) -> dict:
    """ステータス別件数"""
    summary = {status: 0 for status in FINDING_STATUSES}
    for f in system_findings or []:
        summary[f["status"]] += 1
    return summary


def normalize_inspections(items: Optional[list[dict]]) -> list[dict]:
    """点検明細: 部位未入力の行は捨てる"""
    result = []
    for item in items or []:
        component = (item.get("component") or "").strip()
        if not component:
            continue
        status = item.get("status") or "good"
        if status not in INSPECTION_STATUSES:
            raise ValidationFailed(f"点検明細のステータスが不正です: {status}", component=component)
        result.append({"component": component, "status": status, "notes": (item.get("notes") or "").strip()})
    return result


def normalize_parts(items: Optional[list[dict]]) -> list[dict]:
    """使用部品: [{name, quantity, cost}]"""
    result = []
    for item in items or []:
        name = (item.get("name") or "").strip()
        if not name:
            raise ValidationFailed("部品名を入力してください")
        quantity = item.get("quantity")
        if quantity is None:
            quantity = 1
        if quantity < 1:
            raise ValidationFailed("部品の数量は1以上で入力してください", name=name)
        cost = item.get("cost")
        if cost is not None and cost < 0:
            raise ValidationFailed("部品の費用が不正です", name=name)
        result.append({"name": name, "quantity": quantity, "cost": cost})
    return result
