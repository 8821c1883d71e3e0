"""SkillBridge - central skill catalog synchronized into AI coding tools."""

__version__ = "0.3.0"
