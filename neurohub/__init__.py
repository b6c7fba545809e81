"""
NeuroHub backend.

Links a GitHub repository to a project, ingests its commits and source files,
and answers questions about the code with a retrieval-augmented pipeline.
"""

__version__ = "0.3.0"
