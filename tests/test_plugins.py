"""
Tests for the builtin plugins.

Tests the Python project, the C++ background application template and the
VCLibs dependency provider including:
- Manifest changes and capabilities of the Python project
- Staged content and map entries
- Runtime dependency file selection
"""

from __future__ import annotations

from pathlib import Path

from cryptography.hazmat.primitives.serialization import pkcs12
import pytest

from iotappdeploy.extensibility import (
    BaseProjectType,
    CapabilityAddition,
    DependencyConfiguration,
    SdkVersion,
    TargetPlatform,
    XmlContentChange,
    apply_content_changes,
)
from iotappdeploy.plugins.cpp_template import (
    ASSET_FILES,
    RESOURCE_METADATA,
    SIGNING_PUBLISHER,
    CppBackgroundApplicationTemplate,
)
from iotappdeploy.plugins.python_project import IDENTITY_PUBLISHER, PythonProject
from iotappdeploy.plugins.vclibs import (
    CPlusPlusUwpDependency,
    SharedDependenciesProvider,
    vclibs_file_name,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def runtime_dir(tmp_test_dir: Path) -> Path:
    """Provide a Python runtime folder with per-architecture subfolders."""
    root = tmp_test_dir / "runtime"
    for arch in ("ARM", "x86"):
        (root / arch / "Lib").mkdir(parents=True)
        (root / arch / "pyuwpbackgroundservice.dll").write_bytes(arch.encode())
        (root / arch / "Lib" / "os.py").write_text("# os\n")
    return root


class TestPythonProject:
    """Tests for PythonProject."""

    def test_identity(self):
        """Test the package identity and display names."""
        project = PythonProject()

        assert project.identity_name == "python-uwp"
        assert project.display_name == "pythonuwp"
        assert project.base_project_type() == BaseProjectType.CPLUSPLUS_BACKGROUND_APPLICATION

    def test_is_source_supported(self):
        """Test that only .py sources are accepted."""
        project = PythonProject()

        assert project.is_source_supported("app.py")
        assert project.is_source_supported("APP.PY")
        assert not project.is_source_supported("app.js")
        assert not project.is_source_supported(None)

    def test_manifest_changes_apply_cleanly(self, staging_dir):
        """Test that every manifest change matches the bundled manifest."""
        project = PythonProject()
        project.processor_architecture = TargetPlatform.X86

        changes = project.appx_content_changes()
        applied = apply_content_changes(changes, staging_dir)

        assert applied == len(changes)
        manifest = (staging_dir / "AppxManifest.xml").read_text(encoding="utf-8")
        assert 'Name="python-uwp"' in manifest
        assert 'ProcessorArchitecture="x86"' in manifest
        assert 'MinVersion="10.0.10586.0"' in manifest
        assert "<Path>pyuwpbackgroundservice.dll</Path>" in manifest
        assert 'EntryPoint="pyuwpbackgroundservice.StartupTask"' in manifest

    def test_manifest_changes_are_xpath_changes(self):
        """Test that all identity/property changes target the manifest."""
        changes = PythonProject().appx_content_changes()

        assert all(isinstance(c, XmlContentChange) for c in changes)
        assert {c.appx_relative_path for c in changes} == {"AppxManifest.xml"}

    def test_capabilities(self):
        """Test the capability list."""
        assert PythonProject().capabilities() == [
            CapabilityAddition("internetClientServer")
        ]

    def test_contents_without_runtime(self, sample_source):
        """Test that only the script is staged without a runtime folder."""
        project = PythonProject()
        project.source_input = str(sample_source)

        contents = project.appx_contents()

        assert [c.appx_relative_path for c in contents] == ["StartupTask.py"]
        assert contents[0].source == sample_source

    def test_contents_with_platform_runtime(self, runtime_dir, sample_source):
        """Test that the per-architecture runtime folder is used."""
        project = PythonProject(runtime_dir)
        project.source_input = str(sample_source)
        project.processor_architecture = TargetPlatform.X86

        contents = {c.appx_relative_path: c.source for c in project.appx_contents()}

        assert contents["pyuwpbackgroundservice.dll"] == (
            runtime_dir / "x86" / "pyuwpbackgroundservice.dll"
        )
        assert contents["Lib\\os.py"] == runtime_dir / "x86" / "Lib" / "os.py"
        assert "StartupTask.py" in contents

    def test_map_contents(self, runtime_dir, tmp_test_dir):
        """Test that the script and runtime files are listed in the map."""
        project = PythonProject(runtime_dir)
        resource_metadata: list[str] = []
        files: list[str] = []

        assert project.appx_map_contents(resource_metadata, files, tmp_test_dir)

        assert resource_metadata == []
        assert files[0] == f'"{tmp_test_dir / "StartupTask.py"}" "StartupTask.py"'
        assert any(line.endswith('"Lib\\os.py"') for line in files)

    def test_dependencies_from_provider(self, tmp_test_dir):
        """Test that the CPlusPlusUwp dependency is requested."""
        project = PythonProject()
        provider = SharedDependenciesProvider({"vclibs_dir": str(tmp_test_dir)})

        files = project.dependencies([provider])

        assert [f.appx_relative_path for f in files] == [
            "Microsoft.VCLibs.ARM.Debug.14.00.appx"
        ]

    def test_dependencies_without_provider(self):
        """Test that no providers yields no dependencies."""
        assert PythonProject().dependencies([]) == []


class TestCppTemplate:
    """Tests for CppBackgroundApplicationTemplate."""

    def test_bundled_contents(self):
        """Test that without template_dir the bundled files and a fresh key are provided."""
        contents = CppBackgroundApplicationTemplate().template_contents()
        by_path = {c.appx_relative_path: c.source for c in contents}

        assert contents[0].appx_relative_path == "AppxManifest.xml"
        assert Path(by_path["AppxManifest.xml"]).is_file()
        for relative in ASSET_FILES:
            assert Path(by_path[relative]).is_file()
        assert isinstance(by_path["TemporaryKey.pfx"], bytes)
        assert isinstance(by_path["TemporaryKey.pfx.cer"], bytes)
        assert "resources.pri" not in by_path

    def test_bundled_key_matches_publisher(self):
        """Test that the generated key is issued to the manifest publisher."""
        contents = CppBackgroundApplicationTemplate().template_contents()
        pfx = next(c.source for c in contents if c.appx_relative_path == "TemporaryKey.pfx")

        key, cert, _ = pkcs12.load_key_and_certificates(pfx, None)

        assert key is not None
        assert cert.subject.rfc4514_string() == SIGNING_PUBLISHER
        assert SIGNING_PUBLISHER == IDENTITY_PUBLISHER

    def test_template_dir_files(self, template_dir):
        """Test that template_dir contributes the key, resources and assets."""
        contents = CppBackgroundApplicationTemplate(template_dir).template_contents()
        paths = [c.appx_relative_path for c in contents]

        assert paths[0] == "AppxManifest.xml"
        assert "TemporaryKey.pfx" in paths
        assert "Assets\\StoreLogo.png" in paths

    def test_manifest_override(self, template_dir):
        """Test that a manifest in template_dir replaces the bundled one."""
        (template_dir / "AppxManifest.xml").write_text("<Package/>")

        contents = CppBackgroundApplicationTemplate(template_dir).template_contents()

        assert contents[0].source == template_dir / "AppxManifest.xml"

    def test_map_contents_lists_staged_files_only(self, tmp_test_dir):
        """Test that only staged resources and assets are mapped."""
        root = tmp_test_dir / "stage"
        (root / "Assets").mkdir(parents=True)
        (root / "resources.pri").write_bytes(b"pri")
        (root / "Assets" / "StoreLogo.png").write_bytes(b"png")
        resource_metadata: list[str] = []
        files: list[str] = []

        CppBackgroundApplicationTemplate().appx_map_contents(
            resource_metadata, files, root
        )

        assert resource_metadata == RESOURCE_METADATA
        assert files == [
            f'"{root / "resources.pri"}" "resources.pri"',
            f'"{root / "Assets" / "StoreLogo.png"}" "Assets\\StoreLogo.png"',
        ]


class TestVCLibs:
    """Tests for the VCLibs dependency provider."""

    def test_file_name(self):
        """Test the VCLibs package naming scheme."""
        assert vclibs_file_name(
            TargetPlatform.X86, DependencyConfiguration.RELEASE, SdkVersion.SDK_10_0_10586_0
        ) == "Microsoft.VCLibs.x86.Release.14.00.appx"

    def test_no_directory_configured(self):
        """Test that an unconfigured folder yields no files."""
        dependency = CPlusPlusUwpDependency()

        assert dependency.dependency_files(
            TargetPlatform.ARM, DependencyConfiguration.DEBUG, SdkVersion.SDK_10_0_10586_0
        ) == []

    def test_prefers_platform_subfolder(self, tmp_test_dir):
        """Test that the per-platform subfolder wins when present."""
        name = "Microsoft.VCLibs.ARM.Debug.14.00.appx"
        (tmp_test_dir / "ARM").mkdir()
        (tmp_test_dir / "ARM" / name).write_bytes(b"vclibs")
        dependency = CPlusPlusUwpDependency(tmp_test_dir)

        files = dependency.dependency_files(
            TargetPlatform.ARM, DependencyConfiguration.DEBUG, SdkVersion.SDK_10_0_10586_0
        )

        assert files[0].source == tmp_test_dir / "ARM" / name
