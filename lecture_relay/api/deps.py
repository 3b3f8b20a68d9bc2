from fastapi import Request

from lecture_relay.services.artifact_store import ArtifactStore
from lecture_relay.services.session_registry import SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_artifact_store(request: Request) -> ArtifactStore:
    return request.app.state.artifact_store
