"""erdeploy: Mermaid ER diagrams to deployable platform schemas."""

__version__ = "0.1.0"
