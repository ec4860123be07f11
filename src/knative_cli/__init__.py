"""Knative command line client."""

__version__ = "1.0.0"

# filled in by release builds
BUILD_DATE = ""
GIT_REVISION = ""
SERVING_VERSION = "v0.40.0"
EVENTING_VERSION = "v0.40.0"
