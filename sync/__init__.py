"""
Cursor-based pull replication.

Modules:
    consumer: SyncConsumerRunner and the consumer registry
    sources: Readers of changed records (published substances)
    sinks: Version-checked writers into derived stores (mirror table)
    scheduler: Periodic execution of configured consumers (APScheduler)

Usage:
    from sync.consumer import build_consumer_runner

    async with async_session_maker() as session:
        runner = build_consumer_runner(session, "mirror_substances")
        result = await runner.run()
"""

__all__ = [
    "SyncConsumerRunner",
    "build_consumer_runner",
    "PublishedSubstanceSource",
    "MirrorSink",
    "SyncScheduler",
]
