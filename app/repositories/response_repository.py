"""Repository for interview responses (answers, transcripts, recordings)."""

from supabase import AsyncClient

from app.constants import RESPONSES_TABLE
from app.repositories.base_repository import BaseRepository


class ResponseRepository(BaseRepository):
    """Repository for interview response records.

    Responses are written by the interview runtime; this service only removes
    them when a candidate is deleted from a pipeline.
    """

    def __init__(self, db_client: AsyncClient):
        super().__init__(db_client, RESPONSES_TABLE)
