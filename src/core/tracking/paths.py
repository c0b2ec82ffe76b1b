"""Where each kind of record lives in the store."""

CLIENTS = "clients"
DAILY_FEEDBACK = "dailyFeedback"


def client(client_id: str) -> str:
    return f"{CLIENTS}/{client_id}"


def payments(client_id: str) -> str:
    return f"{CLIENTS}/{client_id}/payments"


def payment(client_id: str, payment_id: str) -> str:
    return f"{payments(client_id)}/{payment_id}"


def progress_summary(client_id: str) -> str:
    return f"{CLIENTS}/{client_id}/progress/summary"


def load_effort(client_id: str) -> str:
    return f"{CLIENTS}/{client_id}/dailyRecords/load_effort"


def personal_records(client_id: str) -> str:
    return f"{CLIENTS}/{client_id}/records/rm_pr"


def feedback(feedback_id: str) -> str:
    return f"{DAILY_FEEDBACK}/{feedback_id}"
