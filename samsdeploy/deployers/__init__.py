"""
Component deployers

Maps each component to its deployer variant.
"""

from typing import Dict, Type, Union

from samsdeploy.deployers.backend import BackendDeployer
from samsdeploy.deployers.base import Deployer
from samsdeploy.deployers.desktop import DesktopDeployer
from samsdeploy.deployers.firebase import FirebaseDeployer
from samsdeploy.deployers.mobile import MobileDeployer
from samsdeploy.deployers.support import DeploySupport
from samsdeploy.models.deployment import Component

DEPLOYERS: Dict[Component, Type[Deployer]] = {
    Component.DESKTOP: DesktopDeployer,
    Component.MOBILE: MobileDeployer,
    Component.BACKEND: BackendDeployer,
    Component.FIREBASE: FirebaseDeployer,
}


def create_deployer(component: Union[Component, str], support: DeploySupport) -> Deployer:
    """Instantiate the deployer for a component, bound to one run's support."""
    return DEPLOYERS[Component(component)](support)


__all__ = [
    "Deployer",
    "DeploySupport",
    "DesktopDeployer",
    "MobileDeployer",
    "BackendDeployer",
    "FirebaseDeployer",
    "DEPLOYERS",
    "create_deployer",
]
