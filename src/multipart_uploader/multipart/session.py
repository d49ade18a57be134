import logging

from multipart_uploader.errors import (
    InitializationError,
    ResumeError,
    SessionMismatchError,
)
from multipart_uploader.multipart.planner import PartPlan
from multipart_uploader.multipart.transport import MissingParts, Transport
from multipart_uploader.multipart.upload_info import UploadTarget
from multipart_uploader.types import PartDescriptor, Session, SessionStatus
from multipart_uploader.util import collapse_runs

logger = logging.getLogger(__name__)


class SessionController:
    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def initialize(self, target: UploadTarget) -> Session:
        """Create the backend session. Called once per attempt, never retried."""
        logger.info(
            f"Creating multipart upload for {target.name} -> {target.destination_key}"
        )
        try:
            return self.transport.create_session(
                destination_key=target.destination_key,
                name=target.name,
                size=target.total_size,
            )
        except Exception as e:
            raise InitializationError(
                f"Failed to create multipart upload for {target.destination_key}: {e}"
            ) from e

    def resolve_missing_parts(self, session: Session, plan: PartPlan) -> MissingParts:
        """Ask the backend which parts of the plan it has not acknowledged."""
        try:
            out = self.transport.missing_parts(
                session, part_size=plan.part_size, total_size=plan.total_size
            )
        except Exception as e:
            raise ResumeError(
                f"Failed to query missing parts for upload {session.upload_id}: {e}"
            ) from e

        for desc in out.missing:
            if not 1 <= desc.part_number <= plan.total_parts:
                raise SessionMismatchError(
                    f"Backend reported part {desc.part_number} outside 1..{plan.total_parts}"
                )
            expected = plan.descriptor(desc.part_number)
            if expected.range != desc.range:
                raise SessionMismatchError(
                    f"Backend range {desc.range} for part {desc.part_number} "
                    f"does not match the local plan {expected.range}"
                )
        deduped: dict[int, PartDescriptor] = {}
        for desc in out.missing:
            deduped.setdefault(desc.part_number, desc)
        out.missing = sorted(deduped.values(), key=lambda d: d.part_number)
        missing_numbers = [d.part_number for d in out.missing]
        logger.info(
            f"Upload {session.upload_id}: {len(missing_numbers)} / {plan.total_parts} parts missing "
            f"{collapse_runs(missing_numbers)}"
        )
        return out

    def status(self, session: Session) -> SessionStatus:
        try:
            return self.transport.status(session)
        except Exception as e:
            raise ResumeError(
                f"Failed to query the state of upload {session.upload_id}: {e}"
            ) from e
