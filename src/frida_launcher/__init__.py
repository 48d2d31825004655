"""
frida-launcher - lifecycle manager for frida-server on rooted Android devices.

This package discovers releases from the public release index, downloads and
decompresses the right architecture build, installs it to a privileged path
and starts, stops and probes it through a single elevated shell session.
"""

__version__ = "0.1.0"
