"""
WorkflowGuard: version history and rollback for HubSpot workflows.

This package contains:
- settings / logging_config: configuration and shared logging setup
- models / repositories: SQLAlchemy tables and their queries
- services: snapshot, rollback, scheduling, quota and collaborator clients
- api / routes: FastAPI routers and the app factory
- tasks / celery_app: periodic sync cycle for Celery beat
"""
