"""Turn orchestration: step dispatch, confirmation decisions, and the per-turn pipeline."""
