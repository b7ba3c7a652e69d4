"""SOPForge: turns process narratives into SOPs, waste audits, microagent specs and master prompts."""

__version__ = "0.1.0"
