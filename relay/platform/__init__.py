"""Platform abstractions: subprocesses and HTTP."""
