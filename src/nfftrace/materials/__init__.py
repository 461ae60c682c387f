"""Material model: Phong coefficients, reflection and transmission."""

from .phong import (
    Material,
    ShadingModel,
    blinn_phong_specular,
    diffuse_term,
    phong_specular,
    specular_term,
)

__all__ = [
    "Material",
    "ShadingModel",
    "diffuse_term",
    "phong_specular",
    "blinn_phong_specular",
    "specular_term",
]
