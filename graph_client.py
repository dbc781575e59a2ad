#!/usr/bin/env python3
"""
Microsoft Graph Mail Client

Thin authenticated facade over the Microsoft Graph mail endpoints used by the
backup: the signed-in user's profile, message listings with @odata.nextLink
pagination, and the raw MIME content of a single message.
"""

import datetime
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

import requests

from exceptions import (AuthError, NotFoundError, NotInitializedError,
                        PageConsumedError, TransportError)
from graph_session import GraphSession


GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"

EXPORT_SELECT_FIELDS = ("id", "subject", "receivedDateTime", "from")
PREVIEW_SELECT_FIELDS = ("from", "isRead", "receivedDateTime", "subject")
ALL_MESSAGES_SELECT_FIELDS = ("subject", "body", "bodyPreview", "uniqueBody")

PREFER_TEXT_BODY = {"Prefer": 'outlook.body-content-type="text"'}


def parse_graph_datetime(value: Optional[str]) -> Optional[datetime.datetime]:
    """Parse an ISO 8601 Graph timestamp such as 2024-03-05T14:22:01Z"""
    if not value:
        return None
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        print(f"⚠️ Unparseable receivedDateTime: {value}")
        return None


@dataclass(frozen=True)
class GraphUser:
    """Profile of the signed-in user"""
    display_name: str
    mail: str
    user_principal_name: str

    @classmethod
    def from_graph(cls, data: Dict) -> 'GraphUser':
        return cls(
            display_name=data.get("displayName") or "",
            mail=data.get("mail") or "",
            user_principal_name=data.get("userPrincipalName") or "",
        )


@dataclass(frozen=True)
class GraphMessage:
    """Represents an email message summary from Microsoft Graph API"""
    id: str
    subject: str
    received_datetime: Optional[datetime.datetime]
    sender_email: str = ""
    is_read: bool = False
    body_preview: str = ""
    body_content: str = ""

    @classmethod
    def from_graph(cls, data: Dict) -> 'GraphMessage':
        sender_email = ""
        sender = data.get("from")
        if sender:
            sender_email = sender.get("emailAddress", {}).get("address", "")

        body = data.get("body") or {}

        return cls(
            id=data.get("id", ""),
            subject=data.get("subject") or "",
            received_datetime=parse_graph_datetime(data.get("receivedDateTime")),
            sender_email=sender_email,
            is_read=bool(data.get("isRead", False)),
            body_preview=data.get("bodyPreview") or "",
            body_content=body.get("content") or "",
        )


@dataclass
class MessagePage:
    """One page of a message listing plus the link to the rest, if any"""
    messages: List[GraphMessage]
    next_link: Optional[str] = None
    consumed: bool = field(default=False, compare=False)

    @property
    def has_next(self) -> bool:
        return self.next_link is not None

    def __len__(self) -> int:
        return len(self.messages)


class MessageContentStream:
    """Scoped raw MIME stream for one message; always close it (or use ``with``)"""

    def __init__(self, response: requests.Response, message_id: str, chunk_size: int = 64 * 1024):
        self.response = response
        self.message_id = message_id
        self.chunk_size = chunk_size
        self.bytes_read = 0

    def iter_chunks(self) -> Iterator[bytes]:
        try:
            for chunk in self.response.iter_content(chunk_size=self.chunk_size):
                if chunk:
                    self.bytes_read += len(chunk)
                    yield chunk
        except requests.RequestException as e:
            raise TransportError(f"Stream for message {self.message_id} interrupted: {e}") from e

    def close(self) -> None:
        self.response.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class GraphMailClient:
    """Mail operations against Microsoft Graph for an initialized GraphSession"""

    def __init__(self, session: GraphSession, http: Optional[requests.Session] = None, timeout: float = 30):
        self.session = session
        self.http = http or requests.Session()
        self.timeout = timeout

    def _ensure_initialized(self) -> None:
        if not self.session.is_initialized:
            raise NotInitializedError("Graph has not been initialized for user auth")

    def _make_graph_request(self, url: str, params: Optional[Dict] = None,
                            headers: Optional[Mapping[str, str]] = None,
                            stream: bool = False) -> requests.Response:
        """
        Make an authenticated GET request to Microsoft Graph.

        Raises:
            NotFoundError: On 404
            AuthError: On 401/403
            TransportError: On network failure or any other non-2xx status
        """
        self._ensure_initialized()

        if not url.startswith("http"):
            url = f"{GRAPH_ENDPOINT}{url}"

        try:
            # MSAL may refresh the token over the network
            request_headers = {"Authorization": f"Bearer {self.session.get_token()}"}
            if headers:
                request_headers.update(headers)

            response = self.http.get(url, params=params, headers=request_headers,
                                     timeout=self.timeout, stream=stream)
        except requests.Timeout as e:
            raise TransportError(f"Timeout requesting {url}") from e
        except requests.RequestException as e:
            raise TransportError(f"Graph API request error: {e}") from e

        if response.ok:
            return response

        status = response.status_code
        detail = response.text[:300]
        response.close()

        if status == 404:
            raise NotFoundError(f"Graph resource not found: {url}")
        if status in (401, 403):
            raise AuthError(f"Graph API rejected the token ({status}): {detail}")
        raise TransportError(f"Graph API error: {status} - {detail}", status_code=status)

    def _get_json(self, url: str, params: Optional[Dict] = None,
                  headers: Optional[Mapping[str, str]] = None) -> Dict:
        response = self._make_graph_request(url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from Graph API for {url}: {e}") from e

    def _page_from_json(self, data: Dict) -> MessagePage:
        return MessagePage(
            messages=[GraphMessage.from_graph(item) for item in data.get("value", [])],
            next_link=data.get("@odata.nextLink"),
        )

    def get_current_user(self) -> GraphUser:
        """Get display name, mail and principal name of the signed-in user"""
        data = self._get_json("/me", params={"$select": "displayName,mail,userPrincipalName"})
        return GraphUser.from_graph(data)

    def get_inbox_preview(self, limit: int = 25, order_by: str = "receivedDateTime DESC") -> List[GraphMessage]:
        """Get up to ``limit`` inbox messages ordered by ``order_by``"""
        data = self._get_json(
            "/me/mailFolders/inbox/messages",
            params={
                "$select": ",".join(PREVIEW_SELECT_FIELDS),
                "$top": limit,
                "$orderby": order_by,
            },
        )
        return self._page_from_json(data).messages[:limit]

    def get_messages_page(self, folder: Optional[str] = "inbox",
                          select_fields: Sequence[str] = EXPORT_SELECT_FIELDS,
                          header_options: Optional[Mapping[str, str]] = None,
                          top: Optional[int] = None) -> MessagePage:
        """
        Get the first page of messages in ``folder`` (all mail when folder is None).

        Args:
            folder: Well-known folder name or id, e.g. "inbox" or "SentItems"
            select_fields: Message properties to populate
            header_options: Extra request headers such as a Prefer header
            top: Page size hint

        Returns:
            MessagePage: First page; follow it with get_next_page()
        """
        endpoint = f"/me/mailFolders/{folder}/messages" if folder else "/me/messages"
        params = {"$select": ",".join(select_fields)}
        if top:
            params["$top"] = top

        data = self._get_json(endpoint, params=params, headers=header_options)
        return self._page_from_json(data)

    def get_all_messages_page(self) -> MessagePage:
        """Get the first page across all mail with plain-text bodies"""
        return self.get_messages_page(
            folder=None,
            select_fields=ALL_MESSAGES_SELECT_FIELDS,
            header_options=PREFER_TEXT_BODY,
        )

    def get_next_page(self, page: MessagePage) -> Optional[MessagePage]:
        """
        Advance a page. Returns None when ``page`` was the last one.

        Raises:
            PageConsumedError: If ``page`` was already advanced
        """
        self._ensure_initialized()
        if page.consumed:
            raise PageConsumedError("Message page was already advanced")
        page.consumed = True

        if not page.next_link:
            return None

        # nextLink already carries the query parameters
        return self._page_from_json(self._get_json(page.next_link))

    def iter_pages(self, first_page: MessagePage) -> Iterator[MessagePage]:
        """Yield ``first_page`` and every following page, once each"""
        page = first_page
        while page is not None:
            yield page
            page = self.get_next_page(page) if page.has_next else None

    def get_message_content_stream(self, message_id: str) -> MessageContentStream:
        """
        Open the raw MIME content of a message.

        Raises:
            NotFoundError: If the message was deleted or moved since listing
        """
        response = self._make_graph_request(f"/me/messages/{message_id}/$value", stream=True)
        return MessageContentStream(response, message_id)
