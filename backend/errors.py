from typing import Any, List, Optional


class TicketingError(Exception):
    """Base class for every failure surfaced by the event tickets client.

    `stage` names the lifecycle step that failed (see `SubmissionStage`) and
    `user_fixable` tells callers whether the person at the wallet can act on it.
    """

    user_fixable = False

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_dict(self) -> dict:
        return {
            "kind": type(self).__name__,
            "message": self.message,
            "stage": self.stage,
            "user_fixable": self.user_fixable,
        }


class WalletNotConnected(TicketingError):
    user_fixable = True

    def __init__(self, message: str = "Wallet not connected", stage: Optional[str] = "idle"):
        super().__init__(message, stage)


class WalletRejected(TicketingError):
    """Raised by wallet adapters when the user declines to sign."""

    user_fixable = True

    def __init__(self, message: str = "Transaction rejected by wallet", stage: Optional[str] = None):
        super().__init__(message, stage)


class InsufficientFunds(TicketingError):
    user_fixable = True

    def __init__(self, balance: int, required: int, stage: Optional[str] = "idle"):
        super().__init__(
            f"Insufficient SOL balance: have {balance} lamports, need at least {required} for rent and fees",
            stage,
        )
        self.balance = balance
        self.required = required

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"balance": self.balance, "required": self.required})
        return data


class SimulationFailure(TicketingError):
    user_fixable = True

    def __init__(self, err: Any, logs: Optional[List[str]] = None, stage: Optional[str] = "built"):
        self.err = err
        self.logs = list(logs or [])
        message = f"Transaction simulation failed: {err}"
        if self.logs:
            message += "\n\nLogs: " + "\n".join(self.logs)
        super().__init__(message, stage)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"err": str(self.err), "logs": self.logs})
        return data


class SendFailure(TicketingError):
    def __init__(self, attempts: int, last_error: Optional[BaseException] = None, stage: Optional[str] = "simulated"):
        super().__init__(f"Failed to send transaction after {attempts} attempt(s): {last_error}", stage)
        self.attempts = attempts
        self.last_error = last_error

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["attempts"] = self.attempts
        return data


class ConfirmationTimeout(TicketingError):
    def __init__(self, signature: str, reason: str, err: Any = None, stage: Optional[str] = "sent"):
        super().__init__(f"Transaction {signature} not confirmed: {reason}", stage)
        self.signature = signature
        self.reason = reason
        self.err = err

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"signature": self.signature, "err": None if self.err is None else str(self.err)})
        return data


class DecodeError(TicketingError):
    """Malformed or foreign account bytes."""

    def __init__(self, offset: int, reason: str, stage: Optional[str] = "decode"):
        super().__init__(f"decode failed at offset {offset}: {reason}", stage)
        self.offset = offset
        self.reason = reason

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"offset": self.offset, "reason": self.reason})
        return data


class NetworkError(TicketingError):
    def __init__(self, message: str, stage: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message, stage)
        self.cause = cause
