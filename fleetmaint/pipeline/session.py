import os
import uuid
from fleetmaint.models.base_models import SessionContext, SessionPaths, utc_now


def new_session_id(started_at=None) -> str:
    started_at = started_at or utc_now()
    return f"{started_at.strftime('%Y%m%dT%H%M%SZ')}-{uuid.uuid4().hex[:8]}"


def create_session(session_root: str) -> SessionContext:
    """
    Builds the SessionContext for one run.

    Only paths are computed here. Directories are created by the ArtifactStore once the
    session is confirmed.
    """
    started_at = utc_now()
    session_id = new_session_id(started_at)
    session_dir = os.path.join(os.path.abspath(session_root), session_id)
    return SessionContext(
        session_id=session_id,
        started_at_utc=started_at,
        root_paths=SessionPaths(
            session=session_dir,
            snapshots=os.path.join(session_dir, "snapshots"),
            diffs=os.path.join(session_dir, "diffs"),
            logs=os.path.join(session_dir, "logs"),
        ),
    )
