"""
lecture_relay.schemas
~~~~~~~~~~~~~~~~~~~~~
Pydantic schemas：线上事件与 HTTP 接口模型。
"""
from lecture_relay.schemas.api_response import ApiResponse
from lecture_relay.schemas.events import (
    DeckChangeEvent,
    DeckData,
    HostUpdate,
    PageChangeEvent,
    PresenceEvent,
    SlideData,
    SyncEvent,
    TranscriptChangeEvent,
    parse_host_update,
)
from lecture_relay.schemas.session_data import (
    SessionDetailData,
    SessionInfoData,
    UploadResponseData,
)

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
