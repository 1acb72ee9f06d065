"""jobspine - distributed job scheduling engine.

Poll-based scheduler for persisted, optionally recurring jobs with
at-most-once concurrent execution across worker processes, retries with
dead-lettering, and graceful drain on shutdown.

Quick start::

    from jobspine.execution import register_handler
    from jobspine.scheduling import create_scheduler

    @register_handler("nightly-report")
    def nightly_report(job):
        build_report(job.payload)

    scheduler = create_scheduler()
    scheduler.start()
    ...
    scheduler.shutdown()
"""

__version__ = "0.1.0"
