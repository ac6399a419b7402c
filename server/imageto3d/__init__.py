"""Image-to-3D generation service.

Environment files are read by :func:`imageto3d.config.get_settings`, so
importing the package has no side effects.
"""
