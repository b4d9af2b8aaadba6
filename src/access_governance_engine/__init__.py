"""Access governance risk and remediation engine.

Certifies user access through review campaigns, detects privilege drift and
overprivileged accounts, and rolls governance signals up into department
risk scores.
"""

__version__ = "0.1.0"
