"""
Client side of the part-oriented upload protocol.

    POST   {base}/{key}?action=mpu-create                      -> {key, uploadId}
    GET    {base}/{key}?action=mpu-missing&uploadId=..         -> {missing, uploaded}
    PUT    {base}/{key}?action=mpu-uploadpart&uploadId=..&partNumber=..
                                                               -> {partNumber, etag}
    GET    {base}/{key}?action=mpu-status&uploadId=..          -> {state, key, etag}
    POST   {base}/{key}?action=mpu-complete&uploadId=..        -> {key, etag}
    DELETE {base}/{key}?action=mpu-abort&uploadId=..           -> 204
"""

import abc
import logging
from dataclasses import dataclass, field
from urllib.parse import quote

import httpx

from multipart_uploader.config import UploadConfig
from multipart_uploader.multipart.finished_piece import PartResult
from multipart_uploader.types import PartDescriptor, Session, SessionState, SessionStatus

logger = logging.getLogger(__name__)


@dataclass
class MissingParts:
    missing: list[PartDescriptor]
    # Parts the backend already holds, when it reports them.
    uploaded: list[PartResult] = field(default_factory=list)


@dataclass(frozen=True)
class CompletedObject:
    destination_key: str
    validation_tag: str | None


class Transport(abc.ABC):
    @abc.abstractmethod
    def create_session(self, destination_key: str, name: str, size: int) -> Session:
        pass

    @abc.abstractmethod
    def missing_parts(
        self, session: Session, part_size: int, total_size: int
    ) -> MissingParts:
        pass

    @abc.abstractmethod
    def upload_part(self, session: Session, part_number: int, data: bytes) -> PartResult:
        pass

    @abc.abstractmethod
    def status(self, session: Session) -> SessionStatus:
        pass

    @abc.abstractmethod
    def complete(self, session: Session, manifest: list[dict]) -> CompletedObject:
        pass

    @abc.abstractmethod
    def abort(self, session: Session) -> None:
        pass

    def close(self) -> None:
        pass


def _require(data: dict, key: str, typ: type) -> object:
    val = data.get(key)
    if not isinstance(val, typ):
        raise ValueError(f"Expected {typ.__name__} for {key!r} in response {data}")
    return val


class HttpTransport(Transport):
    def __init__(
        self,
        endpoint_base: str,
        config: UploadConfig | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint_base = endpoint_base.rstrip("/")
        self.config = config or UploadConfig().resolve_defaults()
        assert self.config.part_timeout is not None
        assert self.config.request_timeout is not None
        self._part_timeout = httpx.Timeout(self.config.part_timeout)
        self._request_timeout = httpx.Timeout(self.config.request_timeout)
        self._owns_client = client is None
        if client is None:
            assert self.config.max_concurrency is not None
            limits = httpx.Limits(
                max_connections=self.config.max_concurrency + 2,
                max_keepalive_connections=self.config.max_concurrency,
            )
            client = httpx.Client(timeout=self._request_timeout, limits=limits)
        self.client: httpx.Client = client

    def _url(self, key: str) -> str:
        return f"{self.endpoint_base}/{quote(key, safe='/')}"

    def _json(self, response: httpx.Response) -> dict:
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from {response.url}, got {data!r}")
        return data

    def create_session(self, destination_key: str, name: str, size: int) -> Session:
        response = self.client.post(
            self._url(destination_key),
            params={"action": "mpu-create"},
            json={"name": name, "size": size},
            timeout=self._request_timeout,
        )
        data = self._json(response)
        upload_id = _require(data, "uploadId", str)
        key = data.get("key") or destination_key
        logger.info(f"Created multipart upload {key} with uploadId {upload_id}")
        return Session(upload_id=str(upload_id), destination_key=str(key))

    def missing_parts(
        self, session: Session, part_size: int, total_size: int
    ) -> MissingParts:
        response = self.client.get(
            self._url(session.destination_key),
            params={
                "action": "mpu-missing",
                "uploadId": session.upload_id,
                "partSize": part_size,
                "size": total_size,
            },
            timeout=self._request_timeout,
        )
        data = self._json(response)
        missing_json = _require(data, "missing", list)
        assert isinstance(missing_json, list)
        missing = [PartDescriptor.from_json(m) for m in missing_json]
        missing.sort(key=lambda d: d.part_number)
        uploaded = [PartResult.from_json(u) for u in data.get("uploaded") or []]
        return MissingParts(missing=missing, uploaded=uploaded)

    def upload_part(self, session: Session, part_number: int, data: bytes) -> PartResult:
        response = self.client.put(
            self._url(session.destination_key),
            params={
                "action": "mpu-uploadpart",
                "uploadId": session.upload_id,
                "partNumber": part_number,
            },
            content=data,
            headers={"Content-Type": "application/octet-stream"},
            timeout=self._part_timeout,
        )
        body = self._json(response)
        etag = _require(body, "etag", str)
        acked = body.get("partNumber", part_number)
        if acked != part_number:
            raise ValueError(
                f"Backend acknowledged part {acked} for an upload of part {part_number}"
            )
        return PartResult(
            part_number=part_number,
            validation_tag=str(etag).replace('"', ""),
            byte_length=len(data),
        )

    def status(self, session: Session) -> SessionStatus:
        response = self.client.get(
            self._url(session.destination_key),
            params={"action": "mpu-status", "uploadId": session.upload_id},
            timeout=self._request_timeout,
        )
        data = self._json(response)
        state = SessionState.from_str(str(_require(data, "state", str)))
        etag = data.get("etag")
        return SessionStatus(
            state=state,
            destination_key=str(data.get("key") or session.destination_key),
            validation_tag=str(etag) if etag else None,
        )

    def complete(self, session: Session, manifest: list[dict]) -> CompletedObject:
        response = self.client.post(
            self._url(session.destination_key),
            params={"action": "mpu-complete", "uploadId": session.upload_id},
            json={"parts": manifest},
            timeout=self._request_timeout,
        )
        data = self._json(response)
        etag = data.get("etag")
        return CompletedObject(
            destination_key=str(data.get("key") or session.destination_key),
            validation_tag=str(etag) if etag else None,
        )

    def abort(self, session: Session) -> None:
        response = self.client.delete(
            self._url(session.destination_key),
            params={"action": "mpu-abort", "uploadId": session.upload_id},
            timeout=self._request_timeout,
        )
        response.raise_for_status()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
