"""Exception types shared across the pipeline."""
from __future__ import annotations

from applyflow.models import PauseReason


class ApplyflowError(Exception):
    pass


class HaltingFailure(ApplyflowError):
    """A submission failure that needs a human; pauses the whole campaign."""

    reason: PauseReason


class CaptchaDetected(HaltingFailure):
    reason = PauseReason.CAPTCHA

    def __init__(self, message: str = "CAPTCHA detected") -> None:
        super().__init__(message)


class UserTakeover(HaltingFailure):
    reason = PauseReason.USER_TAKEOVER

    def __init__(self, message: str = "Operator took over the browser session") -> None:
        super().__init__(message)


class InvalidTransition(ApplyflowError):
    def __init__(self, kind: str, current: str, target: str) -> None:
        super().__init__(f"Invalid {kind} transition: {current} -> {target}")
        self.kind = kind
        self.current = current
        self.target = target


class CampaignActiveError(ApplyflowError):
    def __init__(self, campaign_id: str, status: str) -> None:
        super().__init__(f"Campaign {campaign_id} is already {status}")
        self.campaign_id = campaign_id
        self.status = status


class NoActiveCampaign(ApplyflowError):
    pass
