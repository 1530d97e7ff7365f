import os
import asyncio
import logging
from dotenv import load_dotenv
from supabase import create_client, acreate_client, Client, AsyncClient


load_dotenv()
logger = logging.getLogger(__name__)


supabase_url = os.getenv("PUBLIC_SUPABASE_URL")
supabase_key = os.getenv("SECRET_API_KEY")

supabase: Client = create_client(supabase_url, supabase_key)

# Realtime only works on the async client, so it is created on first use
_async_supabase: AsyncClient | None = None
_async_supabase_lock = asyncio.Lock()


def get_supabase() -> Client:
    return supabase


async def get_async_supabase() -> AsyncClient:
    global _async_supabase

    if _async_supabase is not None:
        return _async_supabase

    # Sockets arriving together must share one client
    async with _async_supabase_lock:
        if _async_supabase is None:
            logger.info("creating async supabase client for realtime")
            _async_supabase = await acreate_client(supabase_url, supabase_key)
    return _async_supabase
