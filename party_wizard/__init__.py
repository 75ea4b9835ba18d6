"""Party planning wizard: conversational orchestration for a four-step party plan."""

__version__ = "0.1.0"
