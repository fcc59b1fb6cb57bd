import uuid


def new_run_id() -> str:
    """
    Reason:
    - A single identifier ties together every log line of one plan run
      (validation, payment check, each step).
    Benefit:
    - Debugging becomes fast: grep one id and see the whole story.
    """
    return uuid.uuid4().hex
