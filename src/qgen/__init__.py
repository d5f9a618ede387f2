"""qgen - client for the Bloom's-taxonomy question generation service.

Submits a PDF plus generation parameters, follows the remote job by polling,
and drives the regenerate/finalize feedback loop until a question is accepted.
"""

__version__ = "0.3.0"
