"""Party wizard workflow: shared types, persistence, per-step logic, and turn runtime."""
