"""bosun - one front end for Docker and Singularity images"""

__version__ = "0.1.0"
