"""
Bridge between camera models and non-linear least squares.

The solver works on the flat parameter vector exposed by each camera model.
"""
