"""Unit tests for SDK kind inference."""

from sdkshift.core.migration.rules.sdk_kind import (
    GUID_WEB_APPLICATION,
    SDK_DEFAULT,
    SDK_FUNCTIONS,
    SDK_SYSTEM_WEB,
    SDK_WEB,
    SDK_WINDOWS_DESKTOP,
    SDK_WORKER,
    classify_sdk,
)
from sdkshift.core.project_model import ProjectItem, ProjectModel, PropertyEntry


def _web_model(path="Site.csproj"):
    return ProjectModel(path=path, properties=[
        PropertyEntry("ProjectTypeGuids", f"{GUID_WEB_APPLICATION};{{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}}"),
    ])


class TestExplicitMarkers:
    def test_functions_package(self):
        result = classify_sdk(ProjectModel(path="Fn.csproj"), ["net8.0"], ["Microsoft.Azure.WebJobs.Extensions"])

        assert result.sdk == SDK_FUNCTIONS

    def test_hosting_package_means_worker(self):
        result = classify_sdk(ProjectModel(path="Svc.csproj"), ["net8.0"], ["Microsoft.Extensions.Hosting"])

        assert result.sdk == SDK_WORKER

    def test_web_guid_on_framework_uses_system_web(self):
        result = classify_sdk(_web_model(), ["net472"])

        assert result.sdk == SDK_SYSTEM_WEB
        assert result.is_system_web

    def test_web_guid_on_modern_target(self):
        assert classify_sdk(_web_model(), ["net8.0"]).sdk == SDK_WEB

    def test_unsupported_extension_warns(self):
        result = classify_sdk(ProjectModel(path="Db.sqlproj"), ["net8.0"])

        assert result.sdk == SDK_DEFAULT
        assert result.warnings


class TestStructuralSignals:
    def test_wpf_on_netcoreapp3_uses_windows_desktop(self):
        model = ProjectModel(path="Ui.csproj", items=[ProjectItem("Page", "MainWindow.xaml")])

        result = classify_sdk(model, ["netcoreapp3.1"])

        assert result.sdk == SDK_WINDOWS_DESKTOP
        assert result.uses_wpf

    def test_winforms_on_modern_target_uses_default_sdk(self):
        model = ProjectModel(path="Ui.csproj", items=[ProjectItem("Compile", "Main.cs", {"SubType": "Form"})])

        result = classify_sdk(model, ["net8.0"])

        assert result.sdk == SDK_DEFAULT
        assert result.uses_winforms
        assert result.is_desktop

    def test_razor_content_means_web(self):
        model = ProjectModel(path="Site.csproj", items=[ProjectItem("Content", "Views\\Home\\Index.cshtml")])

        assert classify_sdk(model, ["net8.0"]).sdk == SDK_WEB

    def test_plain_library(self):
        assert classify_sdk(ProjectModel(path="Lib.csproj"), ["net48"]).sdk == SDK_DEFAULT
