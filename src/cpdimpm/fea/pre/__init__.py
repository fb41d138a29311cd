from cpdimpm.fea.pre.mesh import Mesh
from cpdimpm.fea.pre.material import DruckerPrager
from cpdimpm.fea.pre.particles import MaterialPoints
from cpdimpm.fea.pre.gravity import GravityRamp

__all__ = ["Mesh", "DruckerPrager", "MaterialPoints", "GravityRamp"]
