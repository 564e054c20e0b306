"""
tclc: compile OpenCL kernel source files and report build errors.
"""

__version__ = "0.2.0"
__author__ = "Nicolai Waniek"
