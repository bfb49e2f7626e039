"""
Video Intelligence Annotator
调用 Google Video Intelligence REST API: 标签检测、语音转写、镜头切换检测
"""
from pathlib import Path
from typing import Any, Dict, List, Optional
import asyncio
import base64
import logging

import httpx

from config import get_annotator_settings
from core import AnnotationResult
from utils.exceptions import AnnotationError

from .base import Annotator


logger = logging.getLogger(__name__)

FEATURES = ["LABEL_DETECTION", "SPEECH_TRANSCRIPTION", "SHOT_CHANGE_DETECTION"]


def _encode_file(path: Path) -> str:
    return base64.b64encode(path.read_bytes()).decode("ascii")


def parse_annotation_response(payload: Dict[str, Any]) -> AnnotationResult:
    """
    将 Video Intelligence 的 annotationResults 归约为 AnnotationResult

    Args:
        payload: 已完成的 operation 的 response 字段

    Returns:
        AnnotationResult
    """
    labels: List[str] = []
    transcripts: List[str] = []
    shot_count = 0

    for result in payload.get("annotationResults") or []:
        for annotation in result.get("segmentLabelAnnotations") or []:
            description = ((annotation.get("entity") or {}).get("description") or "").strip()
            if description and description not in labels:
                labels.append(description)
        for transcription in result.get("speechTranscriptions") or []:
            alternatives = transcription.get("alternatives") or []
            if alternatives:
                text = (alternatives[0].get("transcript") or "").strip()
                if text:
                    transcripts.append(text)
        shot_count += len(result.get("shotAnnotations") or [])

    return AnnotationResult(
        labels=labels,
        transcript=" ".join(transcripts),
        shot_change_count=shot_count,
    )


class VideoIntelligenceAnnotator(Annotator):
    """
    Google Video Intelligence 标注器

    - gs:// 引用直接作为 inputUri
    - 本地文件以 base64 inputContent 上传
    - 长任务通过 operations 接口轮询
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        endpoint: Optional[str] = None,
        language_code: Optional[str] = None,
        poll_interval: Optional[float] = None,
        max_polls: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_annotator_settings()
        self.api_key = api_key or settings.api_key
        self.endpoint = (endpoint or settings.endpoint).rstrip("/")
        self.language_code = language_code or settings.language_code
        self.poll_interval = settings.poll_interval if poll_interval is None else poll_interval
        self.max_polls = max_polls or settings.max_polls
        self._request_timeout = settings.request_timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._request_timeout))
        return self._client

    def _params(self) -> Dict[str, str]:
        return {"key": self.api_key} if self.api_key else {}

    async def _build_request(self, artifact_ref: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "features": FEATURES,
            "videoContext": {
                "labelDetectionConfig": {"labelDetectionMode": "SHOT_AND_FRAME_MODE"},
                "speechTranscriptionConfig": {
                    "languageCode": self.language_code,
                    "enableAutomaticPunctuation": True,
                },
            },
        }
        if artifact_ref.startswith("gs://"):
            body["inputUri"] = artifact_ref
        else:
            path = Path(artifact_ref)
            if not path.exists():
                raise AnnotationError(f"Artifact not found: {artifact_ref}")
            body["inputContent"] = await asyncio.to_thread(_encode_file, path)
        return body

    async def _start(self, body: Dict[str, Any]) -> str:
        response = await self._get_client().post(
            f"{self.endpoint}/videos:annotate",
            params=self._params(),
            json=body,
        )
        response.raise_for_status()
        name = response.json().get("name")
        if not name:
            raise AnnotationError("Annotate request returned no operation name")
        return name

    async def _wait(self, operation_name: str) -> Dict[str, Any]:
        for attempt in range(self.max_polls):
            response = await self._get_client().get(
                f"{self.endpoint}/{operation_name}",
                params=self._params(),
            )
            response.raise_for_status()
            operation = response.json()
            if operation.get("done"):
                if operation.get("error"):
                    message = operation["error"].get("message") or "unknown error"
                    raise AnnotationError(f"Annotation operation failed: {message}")
                return operation.get("response") or {}
            logger.debug("operation=%s pending poll=%s", operation_name, attempt + 1)
            await asyncio.sleep(self.poll_interval)
        raise AnnotationError(f"Annotation operation {operation_name} did not finish after {self.max_polls} polls")

    async def annotate(self, artifact_ref: str) -> AnnotationResult:
        body = await self._build_request(artifact_ref)
        try:
            operation_name = await self._start(body)
            payload = await self._wait(operation_name)
        except httpx.HTTPError as e:
            raise AnnotationError(f"Video Intelligence request failed: {e}", artifact_ref=artifact_ref) from e

        result = parse_annotation_response(payload)
        logger.info(
            "annotated artifact=%s labels=%s transcript_chars=%s shots=%s",
            artifact_ref,
            len(result.labels),
            len(result.transcript),
            result.shot_change_count,
        )
        return result

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
