import asyncio

from app.core import supabase_client


async def test_concurrent_callers_share_one_async_client(monkeypatch):
    created = []

    async def slow_acreate_client(url, key):
        await asyncio.sleep(0)
        client = object()
        created.append(client)
        return client

    monkeypatch.setattr(supabase_client, "acreate_client", slow_acreate_client)
    monkeypatch.setattr(supabase_client, "_async_supabase", None)
    monkeypatch.setattr(supabase_client, "_async_supabase_lock", asyncio.Lock())

    first, second = await asyncio.gather(
        supabase_client.get_async_supabase(), supabase_client.get_async_supabase()
    )

    assert len(created) == 1
    assert first is second is created[0]
