import os
import sys

import nibabel as nib
import numpy as np
from skimage import draw


def create_noisy_sphere(shape=(64, 64, 64), radius=20, noise_level=1.5, seed=0):
    """Create a binary mask of a sphere with added boundary noise."""
    rng = np.random.default_rng(seed)
    center = np.array(shape) // 2
    x, y, z = np.ogrid[:shape[0], :shape[1], :shape[2]]
    dist = np.sqrt((x - center[0])**2 + (y - center[1])**2 + (z - center[2])**2)

    # Add noise to the distance field
    dist_noisy = dist + rng.normal(0, noise_level, shape)

    mask = dist_noisy <= radius
    return mask.astype(np.uint8)


def create_ellipsoid(semi_axes=(24, 14, 8), padding=4):
    """Axis-aligned ellipsoid padded with empty voxels; deliberately non-cubic."""
    mask = draw.ellipsoid(*semi_axes)
    return np.pad(mask, padding).astype(np.uint8)


def create_box(shape=(48, 40, 32), lo=(10, 8, 6), hi=(38, 30, 24)):
    box = np.zeros(shape, dtype=np.uint8)
    box[lo[0]:hi[0], lo[1]:hi[1], lo[2]:hi[2]] = 1
    return box


def save_synthetic_data(output_dir):
    """Generate and save synthetic volumes as NIfTI, indexed [x, y, z]."""
    os.makedirs(output_dir, exist_ok=True)
    affine = np.eye(4)

    volumes = {
        "Synthetic-Sphere": create_noisy_sphere(),
        "Synthetic-Ellipsoid": create_ellipsoid(),
        "Synthetic-Box": create_box(),
    }

    for name, mask in volumes.items():
        print(f"Generating {name} {mask.shape}...")
        case_dir = os.path.join(output_dir, name)
        os.makedirs(case_dir, exist_ok=True)
        nib.save(nib.Nifti1Image(mask, affine), os.path.join(case_dir, "mask.nii.gz"))

    print(f"Synthetic data saved to {output_dir}")


if __name__ == "__main__":
    save_synthetic_data(sys.argv[1] if len(sys.argv) > 1 else "data/volumes")
