"""
Scaled geometric moments of voxel grids.
"""
