"""Service orchestration layer: coordinates multi-service workflows.

Modules:
- job_service: Orchestrates submit/callback/retry/download/delete for conversion jobs.
"""
