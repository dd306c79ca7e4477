from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from moderation_pipeline.core.exceptions import TransientInferenceError
from moderation_pipeline.core.logger import logger
from moderation_pipeline.models.classification_result import TargetKind
from moderation_pipeline.schemas.classification import ContentTarget

TIMEOUT = 10  # seconds


class ContentSource(ABC):
    """Read-only access to the posts and chat messages jobs refer to."""

    @abstractmethod
    def fetch(self, target_kind: TargetKind, target_id: int) -> Optional[ContentTarget]:
        ...

    def close(self) -> None:
        pass


class RemoteContentSource(ContentSource):
    """Loads targets from the forum's JSON API."""

    PATHS = {
        TargetKind.post: "/posts/{id}.json",
        TargetKind.chat_message: "/chat/messages/{id}.json",
    }

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str] = None,
        timeout: float = TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, target_kind: TargetKind, target_id: int) -> Optional[ContentTarget]:
        if not self.base_url:
            logger.warning(
                "Content API URL not configured, cannot load target",
                extra={"target_ref": f"{target_kind.value}:{target_id}"}
            )
            return None

        url = self.base_url + self.PATHS[target_kind].format(id=target_id)
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["Api-Key"] = self.api_key

        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransientInferenceError(
                f"Content API request failed: {str(e)}",
                backend=self.base_url,
                details={"error": str(e)},
            )

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise TransientInferenceError(
                f"Content API returned status {response.status_code}",
                backend=self.base_url,
                details={"status_code": response.status_code},
            )

        try:
            return self._to_target(target_kind, target_id, response.json())
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.warning(
                "Content API returned an unreadable target",
                extra={
                    "target_ref": f"{target_kind.value}:{target_id}",
                    "error": str(e),
                    "response": response.text[:200]
                }
            )
            raise TransientInferenceError(
                f"Content API returned an unreadable body: {str(e)}",
                backend=self.base_url,
                details={"error": str(e)},
            )

    @staticmethod
    def _to_target(target_kind: TargetKind, target_id: int, data: Dict[str, Any]) -> ContentTarget:
        if target_kind == TargetKind.chat_message:
            return ContentTarget(
                target_id=target_id,
                target_kind=target_kind,
                raw=data.get("message") or "",
                upload_urls=[u["url"] for u in data.get("uploads", []) if u.get("url")],
            )

        return ContentTarget(
            target_id=target_id,
            target_kind=target_kind,
            raw=data.get("raw") or "",
            title=data.get("topic_title"),
            post_number=data.get("post_number"),
            post_type="regular" if data.get("post_type", 1) == 1 else "other",
            upload_urls=[u["url"] for u in data.get("uploads", []) if u.get("url")],
        )

    def close(self) -> None:
        self.session.close()
