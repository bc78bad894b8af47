"""
Remote master patient index provider

HTTP transport to a remote index. Match requests are POSTed as JSON and
remote candidates come back with scores on the same 0-1 scale as local
ones.
"""

import asyncio
import logging
from typing import Dict, List, Any, Optional

import aiohttp
import orjson
from pydantic import ValidationError as PydanticValidationError

from .base_provider import RemoteIndexProvider, rank_matches
from ..core.config import MPIProviderConfig, get_mpi_provider_config
from ..core.exceptions import RemoteIndexError
from ..core.metrics import remote_index_requests_total
from ..domains.matching.models.matching import MatchOrigin, PatientAndMatchQuality, RemoteMatchResponse
from ..domains.patient.models.patient import Patient

logger = logging.getLogger(__name__)


class HttpRemoteIndexProvider(RemoteIndexProvider):
    """Remote index reached over HTTP with aiohttp"""

    def __init__(self, config: Optional[MPIProviderConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or get_mpi_provider_config()
        self.session = session
        self._owns_session = False

    async def initialize(self) -> None:
        if not self.config.endpoint:
            raise RemoteIndexError("MPI_ENDPOINT must be set to use the remote index")
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_ms / 1000)
            )
            self._owns_session = True
        logger.info(f"Remote index provider initialized for {self.config.endpoint}")

    async def cleanup(self) -> None:
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None
        self._owns_session = False

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }
        if self.config.api_key:
            headers['X-API-Key'] = self.config.api_key
        return headers

    def _url(self, path: str) -> str:
        return f"{self.config.endpoint.rstrip('/')}{path}"

    async def find_similar_matches(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        return await self._match('similar', patient, other_data_points, cutoff, max_results)

    async def find_exact_matches(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        return await self._match('exact', patient, other_data_points, cutoff, max_results)

    async def _match(
        self,
        mode: str,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        payload = {
            'patient': patient.to_dict(),
            'otherDataPoints': other_data_points or {},
            'cutoff': cutoff,
            'maxResults': max_results,
            'mode': mode
        }

        data = await self._request('match', 'POST', self._url('/patients/match'), orjson.dumps(payload))

        try:
            response = RemoteMatchResponse.model_validate(data)
        except PydanticValidationError as e:
            remote_index_requests_total.labels(operation='match', status='invalid').inc()
            raise RemoteIndexError(f"Invalid match response from remote index: {e}") from e

        try:
            matches = [
                PatientAndMatchQuality(
                    patient=Patient.from_dict(match.patient),
                    score=match.score,
                    matched_fields=match.matched_fields,
                    origin=MatchOrigin.REMOTE
                )
                for match in response.matches
            ]
        except (KeyError, TypeError, ValueError) as e:
            remote_index_requests_total.labels(operation='match', status='invalid').inc()
            raise RemoteIndexError(f"Invalid patient record in match response from remote index: {e}") from e

        logger.debug(f"Remote index returned {len(matches)} {mode} matches (tracking id {response.tracking_id})")
        return rank_matches(matches, cutoff, max_results)

    async def fetch_remote_patient(self, remote_id: str) -> Patient:
        data = await self._request('fetch', 'GET', self._url(f'/patients/{remote_id}'))
        if not isinstance(data, dict):
            raise RemoteIndexError(f"Invalid patient record returned for remote id {remote_id}")
        try:
            return Patient.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteIndexError(f"Invalid patient record returned for remote id {remote_id}: {e}") from e

    async def _request(self, operation: str, method: str, url: str, body: Optional[bytes] = None) -> Any:
        if self.session is None:
            await self.initialize()

        try:
            async with self.session.request(method, url, data=body, headers=self._headers()) as response:
                if response.status != 200:
                    text = await response.text()
                    remote_index_requests_total.labels(operation=operation, status='error').inc()
                    logger.error(f"Remote index {operation} error {response.status}: {text}")
                    raise RemoteIndexError(f"Remote index returned HTTP {response.status}")

                data = orjson.loads(await response.read())
                remote_index_requests_total.labels(operation=operation, status='success').inc()
                return data

        except asyncio.TimeoutError as e:
            remote_index_requests_total.labels(operation=operation, status='timeout').inc()
            logger.error(f"Remote index {operation} timed out")
            raise RemoteIndexError(f"Remote index {operation} timed out") from e
        except aiohttp.ClientError as e:
            remote_index_requests_total.labels(operation=operation, status='error').inc()
            logger.error(f"Remote index {operation} failed: {e}")
            raise RemoteIndexError(f"Remote index {operation} failed: {e}") from e
        except orjson.JSONDecodeError as e:
            remote_index_requests_total.labels(operation=operation, status='invalid').inc()
            raise RemoteIndexError(f"Remote index returned invalid JSON: {e}") from e
