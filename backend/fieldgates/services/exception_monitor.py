from pydantic import BaseModel

from fieldgates.models.gate import Gate


class ExceptionFrequency(BaseModel):
    exception_count: int
    needs_review: bool


class ExceptionFrequencyMonitor:
    """Flags jobs whose gates were bypassed by exception more than ``threshold`` times.

    Advisory only; nothing here blocks a transition.
    """

    def __init__(self, threshold: int):
        self.threshold = threshold

    def check(self, gates: list[Gate]) -> ExceptionFrequency:
        count = sum(1 for g in gates if g.requires_exception)
        return ExceptionFrequency(exception_count=count, needs_review=count > self.threshold)
