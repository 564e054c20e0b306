"""
Platform, device and program operations on the OpenCL runtime.
"""
