"""Bundle archives for tests."""

import zipfile

import yaml


def app_document(name, version="1.0.0", requires=None, provides=None, parameters=None, resources=None):
    """Minimal app.yaml content."""
    document = {
        "name": name,
        "version": version,
        "deployImage": f"registry.example.com/bundles/{name}-deploy:{version}",
    }
    if requires:
        document["requires"] = requires
    if provides:
        document["provides"] = provides
    if parameters:
        document["parameters"] = parameters
    if resources:
        document["resources"] = resources
    return document


def write_bundle(folder, document, images=None):
    """Write <name>-<version>.kb into folder and return its path."""
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / f"{document['name']}-{document['version']}.kb"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("app.yaml", yaml.safe_dump(document))
        if images is not None:
            archive.writestr("images.tar", images)
    return path
