"""
MQTT building blocks shared by the Live Objects samples.

This package provides the transport session wrapping `aiomqtt`,
the command/response payload models, configuration loading and
the error types surfaced to the sample drivers.
"""
