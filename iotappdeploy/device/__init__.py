# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Device portal access for iotappdeploy.

Modules:
    rest: Authenticated requests, cancellation and multipart uploads
    contracts: Wire-format types (DeploymentState)
    deployer: The uninstall/upload/poll deployment sequence
"""

from .contracts import DeploymentState, format_hresult, parse_deployment_state
from .deployer import DeploymentPhase, DeviceDeployer
from .rest import (
    CancellationToken,
    DeviceRestClient,
    RequestSlot,
    build_multipart_body,
    build_url,
)

__all__ = [
    "CancellationToken",
    "DeploymentPhase",
    "DeploymentState",
    "DeviceDeployer",
    "DeviceRestClient",
    "RequestSlot",
    "build_multipart_body",
    "build_url",
    "format_hresult",
    "parse_deployment_state",
]
