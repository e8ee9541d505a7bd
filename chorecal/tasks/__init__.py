"""
ChoreCal Celery Tasks

Task Modules:
    - calendar_sync: Per-user Google Calendar syncs and the scheduled sweep

Usage:
    from chorecal.tasks.calendar_sync import trigger_calendar_sync

    # Queue a sync after a task edit; returns immediately
    trigger_calendar_sync(user_id)
"""
