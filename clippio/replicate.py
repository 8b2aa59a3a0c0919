"""
Replicate predictions client.

Replicate runs every model as an asynchronous "prediction":
  POST /predictions            {version, input} → {id, urls.get, status}
  GET  urls.get                                 → {status, output?, error?}
with status ∈ starting | processing | succeeded | failed.

Submission errors are raised as SubmitError. Status fetches are lenient:
a non-2xx response or a dropped connection is reported as `processing`
so the poll loop simply tries again on its next tick.
"""

import logging
from typing import Optional

import httpx

from . import config
from .pipeline.errors import SubmitError
from .pipeline.models import JobHandle, JobSpec, JobState, JobStatus, primary_output

logger = logging.getLogger(__name__)

_STATE_MAP = {
    "starting": JobState.STARTING,
    "processing": JobState.PROCESSING,
    "succeeded": JobState.SUCCEEDED,
    "failed": JobState.FAILED,
}


class ReplicateClient:
    """
    Thin async wrapper over the Replicate predictions API.

    Usage:
        async with ReplicateClient(token) as client:
            handle = await client.submit(spec)
            status = await client.poll(handle)
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = config.REPLICATE_API_BASE,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Token {api_token}",
            "Content-Type": "application/json",
        }
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "ReplicateClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def submit(self, spec: JobSpec) -> JobHandle:
        """Create a prediction. Raises SubmitError on any non-2xx response."""
        url = f"{self.base_url}/predictions"
        payload = {"version": spec.provider_model_id, "input": spec.input}

        response = await self._http.post(url, headers=self._headers, json=payload)
        if not response.is_success:
            logger.error(f"Replicate submit rejected ({response.status_code}): {response.text[:200]}")
            raise SubmitError(response.status_code, response.text)

        data = response.json()
        prediction_id = data["id"]
        status_url = (data.get("urls") or {}).get("get") or f"{url}/{prediction_id}"

        logger.info(f"Replicate prediction created: id={prediction_id}, version={spec.provider_model_id[:12]}")
        return JobHandle(id=prediction_id, status_url=status_url)

    async def poll(self, handle: JobHandle) -> JobStatus:
        """Fetch the current status of a prediction."""
        try:
            response = await self._http.get(handle.status_url, headers=self._headers)
        except httpx.TransportError as e:
            logger.warning(f"Status fetch for {handle.id} failed ({e!r}), treating as processing")
            return JobStatus.processing()

        if not response.is_success:
            logger.warning(f"Status fetch for {handle.id} returned {response.status_code}, treating as processing")
            return JobStatus.processing()

        data = response.json()
        raw_status = data.get("status", "")
        state = _STATE_MAP.get(raw_status, JobState.PROCESSING)

        if state == JobState.SUCCEEDED:
            output = primary_output(data.get("output"))
            if not output:
                # Replicate can flip to succeeded a moment before output is attached.
                logger.info(f"Prediction {handle.id} succeeded without output yet, polling again")
                return JobStatus.processing()
            return JobStatus(state=state, output=output)

        if state == JobState.FAILED:
            error = data.get("error")
            return JobStatus(state=state, error=str(error) if error else None)

        return JobStatus(state=state)
