from typing import Any, Optional

import requests

from moderation_pipeline.classifiers.base import InferenceRequest
from moderation_pipeline.core.exceptions import (
    MalformedResponseError,
    TransientInferenceError,
    UnsupportedContentError,
)
from moderation_pipeline.core.logger import logger

TIMEOUT = 10  # seconds


class InferenceClient:
    """Posts classifier payloads to an inference backend and returns the decoded JSON."""

    def __init__(self, timeout: float = TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def classify(
        self,
        base_url: str,
        request: InferenceRequest,
        api_key: Optional[str] = None,
        classification_type: str = "unknown",
    ) -> Any:
        """
        Send one inference request.

        Args:
            base_url: Scheme, host and port of the backend
            request: Path and JSON body built by the classifier
            api_key: Optional key sent as ``X-API-KEY``
            classification_type: Used for error context

        Returns:
            The decoded JSON body

        Raises:
            TransientInferenceError: On network errors, timeouts and non-2xx statuses
            MalformedResponseError: If the body is not JSON
            UnsupportedContentError: If the backend cannot handle the content (415)
        """
        url = f"{base_url.rstrip('/')}{request.path}"
        headers = {"accept": "application/json", "content-type": "application/json"}
        if api_key:
            headers["X-API-KEY"] = api_key

        try:
            response = self.session.post(url, json=request.body, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransientInferenceError(
                f"Inference request timed out after {self.timeout}s",
                backend=base_url,
                details={"error": str(e)},
            )
        except requests.exceptions.RequestException as e:
            raise TransientInferenceError(
                f"Inference request failed: {str(e)}",
                backend=base_url,
                details={"error": str(e)},
            )

        if response.status_code == 415:
            raise UnsupportedContentError(
                "Inference backend does not support this content",
                backend=base_url,
                details={"status_code": 415, "response": response.text[:200]},
            )

        if not 200 <= response.status_code < 300:
            logger.warning(
                f"Inference backend returned status {response.status_code}",
                extra={
                    "backend": base_url,
                    "classification_type": classification_type,
                    "status_code": response.status_code,
                    "response": response.text[:200]
                }
            )
            raise TransientInferenceError(
                f"Inference backend returned status {response.status_code}",
                backend=base_url,
                details={"status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError:
            raise MalformedResponseError(
                "Inference backend returned a body that is not JSON",
                classification_type=classification_type,
                details={"backend": base_url, "response": response.text[:200]},
            )

    def close(self) -> None:
        self.session.close()
