"""Visual Search Game LTI tool: AGS grade passback and platform bootstrap."""

__version__ = "0.1.0"
