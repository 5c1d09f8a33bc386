"""sfgraph: dependency-graph analysis for GitHub-hosted Salesforce codebases."""

__version__ = "0.3.0"
