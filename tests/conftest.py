import csv
import io
import json
from collections import Counter
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from app.services.dialpad_service import DialpadService
from app.services.graph_mail_service import GraphMailService
from app.services.remote_api_client import ApiClientConfig, RemoteApiClient, RetryPolicy

DIALPAD_BASE_URL = "https://dialpad.test/api/v2"
DOWNLOAD_HOST = "files.dialpad.test"
GRAPH_BASE_URL = "https://graph.test/v1.0"

FAST_RETRY = RetryPolicy(max_attempts=3, base_delay=0.0, jitter=0.0)


async def no_sleep(_seconds: float) -> None:
    return None


def to_csv(rows: list[dict]) -> str:
    if not rows:
        return "call_id,date_started\n"
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()))
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def stamp(days_ago: float, now: datetime | None = None) -> str:
    """Zone-less Dialpad style timestamp."""
    moment = (now or datetime.now(UTC)) - timedelta(days=days_ago)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


class FakeDialpadApi:
    """In-memory stand-in for the Dialpad users, stats and transcripts endpoints."""

    def __init__(self, users: list[dict] | None = None, pending_polls: int = 1):
        self.users = users or []
        self.records: dict[tuple[str, str], list[dict]] = {}
        self.pending_polls = pending_polls
        self.failing_users: set[str] = set()
        self.users_status: int | None = None
        self.poll_counts: Counter = Counter()
        self.submissions: list[dict] = []
        self.requests: list[httpx.Request] = []

    def add_records(self, user_id: str, stat_type: str, rows: list[dict]) -> None:
        self.records[(user_id, stat_type)] = rows

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == DOWNLOAD_HOST:
            user_id, stat_type = path.strip("/").removesuffix(".csv").split("__")
            return httpx.Response(200, text=to_csv(self.records.get((user_id, stat_type), [])))

        if path == "/api/v2/users":
            if self.users_status:
                return httpx.Response(self.users_status, json={"error": {"message": "boom"}})
            limit = int(request.url.params.get("limit", "100"))
            start = int(request.url.params.get("cursor", "0"))
            page = self.users[start : start + limit]
            body = {"items": page}
            if start + limit < len(self.users):
                body["cursor"] = str(start + limit)
            return httpx.Response(200, json=body)

        if path == "/api/v2/stats" and request.method == "POST":
            payload = json.loads(request.content)
            self.submissions.append(payload)
            if payload["target_id"] in self.failing_users:
                return httpx.Response(500, json={"error": {"message": "export failed"}})
            return httpx.Response(200, json={"request_id": f"{payload['target_id']}__{payload['stat_type']}"})

        if path.startswith("/api/v2/stats/"):
            job_id = path.rsplit("/", 1)[-1]
            self.poll_counts[job_id] += 1
            if self.poll_counts[job_id] <= self.pending_polls:
                return httpx.Response(200, json={"status": "processing"})
            return httpx.Response(
                200,
                json={"status": "completed", "download_url": f"https://{DOWNLOAD_HOST}/{job_id}.csv"},
            )

        if path.startswith("/api/v2/transcripts/"):
            call_id = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"call_id": call_id, "lines": [{"speaker": "a", "text": "hi"}]})

        return httpx.Response(404, json={"error": {"message": f"no route for {path}"}})


def make_dialpad_service(api: FakeDialpadApi, cache=None, max_items: int = 2000, page_size: int = 100):
    client = RemoteApiClient(
        ApiClientConfig(base_url=DIALPAD_BASE_URL, bearer_token="dialpad-token", retry_policy=FAST_RETRY),
        "Dialpad",
        transport=httpx.MockTransport(api.handler),
        sleep=no_sleep,
    )
    return DialpadService(
        client,
        poll_policy=RetryPolicy(max_attempts=5, base_delay=0.0, jitter=0.0),
        max_items=max_items,
        page_size=page_size,
        cache=cache,
        sleep=no_sleep,
    )


def make_graph_service(handler, max_items: int = 2000):
    client = RemoteApiClient(
        ApiClientConfig(base_url=GRAPH_BASE_URL, bearer_token="graph-token", retry_policy=FAST_RETRY),
        "Graph",
        transport=httpx.MockTransport(handler),
        sleep=no_sleep,
    )
    return GraphMailService(client, max_items=max_items)


def graph_message(
    message_id: str,
    sender: str,
    recipients: list[str],
    received: str,
    subject: str = "",
    content: str = "<p>hello</p>",
    is_draft: bool = False,
) -> dict:
    return {
        "id": message_id,
        "subject": subject,
        "from": {"emailAddress": {"address": sender}},
        "toRecipients": [{"emailAddress": {"address": r}} for r in recipients],
        "receivedDateTime": received,
        "body": {"contentType": "html", "content": content},
        "isDraft": is_draft,
        "webLink": f"https://outlook.test/{message_id}",
    }


@pytest.fixture
def fake_dialpad():
    return FakeDialpadApi(
        users=[
            {"id": "u1", "display_name": "Alice", "emails": ["alice@example.com"]},
            {"id": "u2", "display_name": "Bob", "emails": ["bob@example.com"]},
            {"id": "u3", "display_name": "Carol", "emails": ["carol@example.com"]},
        ]
    )
