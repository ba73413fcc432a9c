"""
Request and response models of the Flow Pet API, one module per router area.
"""
