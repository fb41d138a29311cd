from cpdimpm.fea.analysis.model import Model
from cpdimpm.fea.analysis.shape_functions import Connectivity, cpdi2q
from cpdimpm.fea.analysis.projection import NodalState

__all__ = ["Model", "Connectivity", "cpdi2q", "NodalState"]
