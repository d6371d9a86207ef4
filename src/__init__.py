"""Workflow builder core.

Root package for the no-code automation workflow model used by the CRM /
strategy-management product.

The system consists of several core components:
- workflow: Step tree model, variable templating, condition routing,
  for-each iteration, structural editing, validation and a sequential runner
- utils: Cross-cutting concerns including config, logging and storage
"""
