import logging
import threading
from typing import TYPE_CHECKING, Any, Iterator

import requests

from .errors import NotionAPIError
from .retry import DEFAULT_POLICY, RetryPolicy, with_retry

if TYPE_CHECKING:
    from ..config_schema import NotionConfig

logger = logging.getLogger(__name__)


class NotionClient:
    """Blocking Notion REST client.

    One ``requests.Session`` per thread, so the client can be shared by
    ``run_sync`` workers. Every request goes through ``with_retry``.
    """

    def __init__(
        self,
        config: "NotionConfig",
        retry_policy: RetryPolicy = DEFAULT_POLICY,
    ):
        self.config = config
        self.retry_policy = retry_policy
        self._thread_local = threading.local()
        self.base_url = config.base_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """Session for the current thread."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.token}",
                "Notion-Version": self.config.api_version,
                "Content-Type": "application/json",
            }
        )
        return session

    @property
    def timeout(self) -> tuple[float, float]:
        return (self.config.connect_timeout, self.config.read_timeout)

    def _send(
        self,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Perform one HTTP request and decode the JSON body.

        Raises:
            NotionAPIError: On any non-2xx response.
            requests.RequestException: On transport failures.
        """
        session = self._get_session()
        response = session.request(
            method,
            f"{self.base_url}/{path.lstrip('/')}",
            json=json_body,
            params=params,
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            code = ""
            message = response.reason or ""
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                code = body.get("code", "") or ""
                message = body.get("message", message) or message
            raise NotionAPIError(response.status_code, code, message)
        return response.json()

    def _request(
        self,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return with_retry(
            self._send,
            self.retry_policy,
            method,
            path,
            json_body=json_body,
            params=params,
        )

    def query_database(
        self, database_id: str, start_cursor: str | None = None
    ) -> dict[str, Any]:
        """
        Fetch one page of query results for a database.
        """
        body: dict[str, Any] = {"page_size": self.config.page_size}
        if start_cursor:
            body["start_cursor"] = start_cursor
        return self._request(
            "POST", f"databases/{database_id}/query", json_body=body
        )

    def iter_database(self, database_id: str) -> Iterator[dict[str, Any]]:
        """Yield every row of a database, following the pagination cursor."""
        cursor: str | None = None
        while True:
            result = self.query_database(database_id, cursor)
            yield from result.get("results", [])
            if not result.get("has_more"):
                break
            cursor = result.get("next_cursor")
            if not cursor:
                break

    def retrieve_page(self, page_id: str) -> dict[str, Any]:
        """
        Get page properties and metadata by page id.
        """
        return self._request("GET", f"pages/{page_id}")

    def list_block_children(
        self, block_id: str, start_cursor: str | None = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"page_size": self.config.page_size}
        if start_cursor:
            params["start_cursor"] = start_cursor
        return self._request(
            "GET", f"blocks/{block_id}/children", params=params
        )

    def _all_children(self, block_id: str) -> list[dict[str, Any]]:
        children: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            result = self.list_block_children(block_id, cursor)
            children.extend(result.get("results", []))
            if not result.get("has_more"):
                return children
            cursor = result.get("next_cursor")
            if not cursor:
                return children

    def get_block_tree(self, block_id: str) -> list[dict[str, Any]]:
        """Fetch all blocks under *block_id*, nesting children in place.

        Each block with ``has_children`` gets a ``children`` list. Uses an
        explicit worklist so deep pages do not hit the recursion limit.
        """
        top = self._all_children(block_id)
        pending = [b for b in top if b.get("has_children")]
        while pending:
            block = pending.pop()
            # Child pages are separate records, not inline content
            if block.get("type") == "child_page":
                block["children"] = []
                continue
            kids = self._all_children(block["id"])
            block["children"] = kids
            pending.extend(k for k in kids if k.get("has_children"))
        return top

    def download(self, url: str) -> bytes:
        """Download a file (asset) and return its bytes.

        Signed asset URLs must not carry the API authorization header, so
        this uses a bare ``requests.get``.
        """

        def _get() -> bytes:
            response = requests.get(url, timeout=self.timeout)
            if response.status_code >= 400:
                raise NotionAPIError(
                    response.status_code, "", response.reason or ""
                )
            return response.content

        return with_retry(_get, self.retry_policy)

    def validate_connection(self) -> str:
        """
        Validate the token by fetching the bot user.
        Returns the bot name (or id) if successful.
        """
        me = self._request("GET", "users/me")
        return str(me.get("name") or me.get("id") or "")
