"""Approval chain service.

This package routes documents (authorization requests, handovers) through an
ordered chain of human approval steps, tracks per-step and aggregate progress,
and lets an administrator override a stuck chain.

Core subpackages
----------------

- ``approval_chain.core``: configuration, logging, error taxonomy and the
  relational persistence layer.
- ``approval_chain.engine``: chain construction, the decision state machine,
  the transactional retry controller, bypass and approver changes.
- ``approval_chain.server``: the FastAPI surface over ``ApprovalService``.
"""
