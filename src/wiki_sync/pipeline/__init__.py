"""AI documentation pipeline.

Stages, in run order:

- ``summarizer``   -- per-file summaries (multi-stage mode).
- ``planner``      -- directory compression and group planning.
- ``analyzer``     -- batched analysis into document proposals.
- ``consolidator`` -- merges overlapping proposals per category.
- ``generator``    -- final Markdown for each proposal.
- ``review``       -- advisory annotations after clean merges.
- ``orchestrator`` -- ``DocumentPipeline``: runs the stages and applies
  the documents.
"""
