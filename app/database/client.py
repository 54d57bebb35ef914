from supabase import acreate_client, AsyncClient
import os
from dotenv import load_dotenv

load_dotenv()


async def create_supabase_client() -> AsyncClient:
    """Create the async Supabase client used for queries and realtime channels."""
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
    return await acreate_client(url, key)
