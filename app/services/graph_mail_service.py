"""
Microsoft Graph mail service.
Searches mailboxes and drains mail folders for messages involving a contact.
Clients are built per caller because Graph tokens belong to the signed-in user.
"""

from datetime import datetime
from urllib.parse import quote

from app.features.comms_history.pipeline.pagination import PagedCollectionFetcher
from app.infrastructure.observability.logging import get_logger
from app.services.remote_api_client import RemoteApiClient

logger = get_logger(__name__)

MESSAGE_FIELDS = (
    "id,subject,body,from,toRecipients,receivedDateTime,sentDateTime,isDraft,webLink"
)
DEFAULT_RECENT_FOLDERS = ("inbox", "sentitems")


def build_search_clause(email: str, subject: str | None = None) -> str:
    """KQL clause for messages from or to an address, optionally narrowed by subject text."""
    clause = f"from:{email} OR to:{email}"
    if subject:
        clause += f" AND {subject}"
    return f'"{clause}"'


def _without_drafts(messages: list[dict]) -> list[dict]:
    return [m for m in messages if isinstance(m, dict) and not m.get("isDraft")]


class GraphMailService:
    """Mailbox search and folder listing against Microsoft Graph."""

    def __init__(
        self, client: RemoteApiClient, max_items: int = 2000, max_pages: int = 200, page_size: int = 50
    ):
        self.client = client
        self.page_size = page_size
        self.fetcher = PagedCollectionFetcher(client.get_json, max_items=max_items, max_pages=max_pages)

    async def close(self) -> None:
        await self.client.close()

    async def search_messages(
        self, mailbox: str, email: str, subject: str | None = None
    ) -> list[dict]:
        """
        Search one mailbox for messages from or to an address.

        Raises:
            AccessDeniedError: when the caller cannot read the mailbox
        """
        params = {
            "$search": build_search_clause(email, subject),
            "$count": "true",
            "$top": self.page_size,
        }
        messages = await self.fetcher.fetch_link_paged(
            f"/users/{quote(mailbox, safe='@')}/messages",
            params=params,
            headers={"ConsistencyLevel": "eventual"},
            operation="search_messages",
        )
        kept = _without_drafts(messages)
        logger.info("Mailbox searched", mailbox=mailbox, message_count=len(kept))
        return kept

    async def list_mailbox_messages(self, mailbox: str, since: datetime) -> list[dict]:
        """Messages received by a mailbox since a point in time."""
        params = {
            "$filter": f"receivedDateTime ge {since.strftime('%Y-%m-%dT%H:%M:%SZ')}",
            "$orderby": "receivedDateTime desc",
            "$select": MESSAGE_FIELDS,
            "$top": self.page_size,
        }
        messages = await self.fetcher.fetch_link_paged(
            f"/users/{quote(mailbox, safe='@')}/messages",
            params=params,
            operation="list_mailbox_messages",
        )
        return _without_drafts(messages)

    async def list_recent(self, folders: tuple[str, ...] = DEFAULT_RECENT_FOLDERS) -> list[dict]:
        """Drain the signed-in user's folders; filtering happens client-side."""
        collected: list[dict] = []
        for folder in folders:
            messages = await self.fetcher.fetch_link_paged(
                f"/me/mailFolders/{folder}/messages",
                params={"$top": self.page_size, "$select": MESSAGE_FIELDS},
                operation="list_recent",
            )
            collected.extend(_without_drafts(messages))
        logger.info("Recent messages listed", folders=list(folders), message_count=len(collected))
        return collected
