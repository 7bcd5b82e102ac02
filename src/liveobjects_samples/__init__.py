"""
liveobjects_samples

Sample programs connecting to the Orange Live Objects platform over
MQTT: a device answering commands and an application consuming a
FIFO queue.
"""
__version__ = "0.1.0"
