"""WordPress REST API client used to list, fetch and publish posts."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .errors import HttpError, InterpressError, NetworkError, ParseError, PublishError
from .structures import ContentItem, TranslatedContent

logger = logging.getLogger(__name__)

API_PREFIX = "/wp-json/wp/v2"
MAX_PER_PAGE = 100


@dataclass(frozen=True)
class WordPressCredentials:
    site_url: str
    username: str
    app_password: str


@dataclass
class HostPost:
    """The parts of an original post a translation copies over."""

    post_id: int
    slug: str
    link: Optional[str] = None
    categories: List[int] = field(default_factory=list)
    tags: List[int] = field(default_factory=list)
    featured_media: Optional[int] = None
    meta: Dict[str, Any] = field(default_factory=dict)


def validate_site_url(url: str) -> str:
    """Normalise a site URL: no trailing slash, https by default."""

    formatted = url.strip().rstrip("/")
    if not formatted.startswith(("http://", "https://")):
        formatted = "https://" + formatted
    return formatted


def translated_slug(slug: str, language_code: str) -> str:
    return f"{slug}-{language_code.lower()}"


def _rendered(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("rendered") or "")
    return str(value or "")


class WordPressClient:
    """Thin async client for the endpoints the pipeline needs."""

    def __init__(
        self,
        credentials: WordPressCredentials,
        *,
        client: Optional[httpx.AsyncClient] = None,
        read_timeout: float = 30.0,
        write_timeout: float = 60.0,
        list_timeout: float = 60.0,
    ) -> None:
        self.credentials = credentials
        self.base_url = validate_site_url(credentials.site_url)
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.list_timeout = list_timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._auth = httpx.BasicAuth(credentials.username, credentials.app_password)

    async def __aenter__(self) -> "WordPressClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        **kwargs: Any,
    ) -> Any:
        url = f"{self.base_url}{API_PREFIX}{path}"
        try:
            response = await self._client.request(
                method, url, auth=self._auth, timeout=timeout, **kwargs
            )
        except httpx.TimeoutException as exc:
            raise NetworkError(
                f"Request to {path} timed out. Your WordPress site might be slow to respond."
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Request to {path} failed: {exc}") from exc
        if response.is_error:
            raise HttpError(response.status_code, response.text, service="WordPress")
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(f"WordPress returned invalid JSON for {path}.") from exc

    async def test_connection(self) -> bool:
        data = await self._request("GET", "/users/me", timeout=self.read_timeout)
        return bool(isinstance(data, dict) and data.get("id"))

    async def list_posts(self, per_page: int = MAX_PER_PAGE, page: int = 1) -> List[ContentItem]:
        data = await self._request(
            "GET",
            "/posts",
            timeout=self.list_timeout,
            params={"per_page": per_page, "page": page, "order": "desc", "orderby": "date"},
        )
        if not isinstance(data, list):
            raise ParseError("WordPress post listing was not a list.")
        return [self._to_item(entry) for entry in data]

    async def latest_posts(self, count: int) -> List[ContentItem]:
        """Return up to ``count`` of the most recent posts, paging as needed."""

        if count <= 0:
            return []
        per_page = min(count, MAX_PER_PAGE)
        items: List[ContentItem] = []
        page = 1
        while len(items) < count:
            try:
                batch = await self.list_posts(per_page=per_page, page=page)
            except HttpError as exc:
                # WordPress answers 400 once the page number passes the last page.
                if page > 1 and exc.status_code == 400:
                    break
                raise
            items.extend(batch)
            if len(batch) < per_page:
                break
            page += 1
        if len(items) < count:
            logger.info("Only %d posts available; %d requested.", len(items), count)
        return items[:count]

    async def fetch_item(self, post_id: int) -> ContentItem:
        data = await self._request("GET", f"/posts/{post_id}", timeout=self.read_timeout)
        return self._to_item(data)

    async def fetch_post(self, post_id: int) -> HostPost:
        data = await self._request("GET", f"/posts/{post_id}", timeout=self.read_timeout)
        if not isinstance(data, dict) or "slug" not in data:
            raise ParseError(f"WordPress post {post_id} has an unexpected shape.")
        meta = data.get("meta")
        return HostPost(
            post_id=int(data.get("id", post_id)),
            slug=str(data["slug"]),
            link=data.get("link"),
            categories=list(data.get("categories") or []),
            tags=list(data.get("tags") or []),
            featured_media=data.get("featured_media") or None,
            meta=dict(meta) if isinstance(meta, dict) else {},
        )

    async def publish(
        self,
        item: ContentItem,
        translated: TranslatedContent,
        target_language: str,
    ) -> int:
        """Create the translated post and return its id."""

        language = target_language.lower()
        try:
            original = await self.fetch_post(item.item_id)
            logger.debug("Original post fetched: %s", original.slug)

            meta = dict(original.meta)
            meta["polylang_current_language"] = language
            source_url = item.source_url or original.link
            if source_url:
                meta["_translated_original_url"] = source_url

            payload: Dict[str, Any] = {
                "title": translated.title,
                "content": translated.body,
                "status": "publish",
                "slug": translated_slug(original.slug, language),
                "categories": original.categories,
                "tags": original.tags,
                "meta": meta,
            }
            if original.featured_media:
                payload["featured_media"] = original.featured_media

            logger.info(
                "Creating translated post with slug %s in language %s.", payload["slug"], language
            )
            created = await self._request(
                "POST",
                "/posts",
                timeout=self.write_timeout,
                json=payload,
                headers={"X-WP-Lang": language, "X-Polylang-Language": language},
            )
        except InterpressError as exc:
            raise PublishError(
                f"Failed to publish translation of post {item.item_id}: {exc}"
            ) from exc

        new_id = created.get("id") if isinstance(created, dict) else None
        if not isinstance(new_id, int):
            raise PublishError(
                f"WordPress did not return an id for the translation of post {item.item_id}."
            )
        return new_id

    @staticmethod
    def _to_item(entry: Any) -> ContentItem:
        if not isinstance(entry, dict) or "id" not in entry:
            raise ParseError("WordPress post entry has an unexpected shape.")
        return ContentItem(
            item_id=int(entry["id"]),
            title=html.unescape(_rendered(entry.get("title"))),
            body=_rendered(entry.get("content")),
            source_url=entry.get("link"),
            slug=entry.get("slug"),
        )


class DryRunPublisher:
    """Publisher that only logs what would have been written."""

    def __init__(self) -> None:
        self.published: List[TranslatedContent] = []

    async def publish(
        self,
        item: ContentItem,
        translated: TranslatedContent,
        target_language: str,
    ) -> int:
        self.published.append(translated)
        logger.info(
            "[dry-run] Would publish post %s as '%s' (%s, %d chars).",
            item.item_id,
            translated.title,
            target_language,
            len(translated.body),
        )
        return 0
