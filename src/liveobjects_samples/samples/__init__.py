"""
The sample programs: device command handling and FIFO consumption.
"""
