"""ドメイン例外

呼び出し側が案内を出し分けられるよう、拒否理由ごとに code を持たせる。
HTTPステータスへの変換は main.py の例外ハンドラで行う。
"""


class FleetcareError(Exception):
    code = "error"
    status_code = 400
    default_message = "処理に失敗しました"

    def __init__(self, message: str = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


# ---------------------------------------------------------
# 入力検証エラー (状態変更なし)
# ---------------------------------------------------------

class ValidationFailed(FleetcareError):
    code = "validation_failed"
    status_code = 422
    default_message = "入力値が不正です"


class InvalidPlan(ValidationFailed):
    code = "invalid_plan"
    default_message = "プランが見つかりません"


class InvalidMonths(ValidationFailed):
    code = "invalid_months"
    default_message = "延長月数は1〜1200ヶ月の範囲で指定してください"


class InvalidVehicleCount(ValidationFailed):
    code = "invalid_vehicle_count"
    default_message = "車両台数がプランの上限を超えています"


class InvalidVin(ValidationFailed):
    code = "invalid_vin"
    default_message = "VINは英数字17文字で入力してください"


class InvalidFinding(ValidationFailed):
    code = "invalid_finding"
    default_message = "点検項目が不正です"


class FindingNoteRequired(ValidationFailed):
    code = "finding_note_required"
    default_message = "要注意・緊急の項目には必要な対応を入力してください"


class InvalidRejectionReason(ValidationFailed):
    code = "invalid_rejection_reason"
    default_message = "差し戻し理由を入力してください"


class InvalidTechnician(ValidationFailed):
    code = "invalid_technician"
    default_message = "有効な技術者ではありません"


# ---------------------------------------------------------
# 不変条件違反 (状態変更なし)
# ---------------------------------------------------------

class InvariantViolation(FleetcareError):
    code = "invariant_violation"
    status_code = 409
    default_message = "現在の状態ではこの操作はできません"


class InvalidTransition(InvariantViolation):
    code = "invalid_transition"


class DuplicatePendingSubscription(InvariantViolation):
    code = "duplicate_pending_subscription"
    default_message = "支払い待ちの購読があります。先に既存の購読の支払いを完了してください"


class ActiveSubscriptionExists(InvariantViolation):
    code = "active_subscription_exists"
    default_message = "既に有効な購読があります。プラン変更は管理者にお問い合わせください"


class SubscriptionNotPayable(InvariantViolation):
    code = "subscription_not_payable"
    default_message = "支払いが確認されていない購読には技術者を割り当てられません"


class SubscriptionNotActive(InvariantViolation):
    code = "subscription_not_active"
    default_message = "有効な購読ではありません"


class NoActiveAssignment(InvariantViolation):
    code = "no_active_assignment"
    default_message = "この購読の担当技術者ではありません"


class VisitAlreadyInProgress(InvariantViolation):
    code = "visit_already_in_progress"
    default_message = "進行中の訪問が既にあります"


class EvidenceAlreadySubmitted(InvariantViolation):
    code = "evidence_already_submitted"
    default_message = "支払い情報は送信済みです。管理者の確認をお待ちください"


# ---------------------------------------------------------
# その他
# ---------------------------------------------------------

class NotFound(FleetcareError):
    code = "not_found"
    status_code = 404
    default_message = "対象が見つかりません"


class PermissionDenied(FleetcareError):
    code = "permission_denied"
    status_code = 403
    default_message = "この操作の権限がありません"


class MediaUploadFailed(FleetcareError):
    code = "media_upload_failed"
    status_code = 502
    default_message = "写真・動画のアップロードに失敗しました。再度提出してください"
