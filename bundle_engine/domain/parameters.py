"""Parameter merging for installs."""

from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from bundle_engine.core.errors import MissingParameterError
from bundle_engine.domain.models import ParameterDefinition, ParameterSpec
from bundle_engine.domain.secrets import SecretResolver


@dataclass
class ParameterDesc:
    value: str
    default: str
    description: str


class ParameterManager:
    """
    Merges an application's parameter definitions with an install's overrides.

    Definitions or overrides carrying a generate_secret spec resolve to the
    value stored in the global secret record for `<install>.<parameter>`.
    """

    def __init__(
        self,
        resolver: Optional[SecretResolver],
        install_name: str,
        definitions: List[ParameterDefinition],
        parameters: List[ParameterSpec],
    ):
        self.resolver = resolver
        self.install_name = install_name
        self.definitions = list(definitions)
        self.parameters = list(parameters)

    def _secret(self, name: str, spec) -> str:
        if self.resolver is None:
            raise ValueError(f"no secret resolver configured for parameter '{name}'")
        return self.resolver.resolve(self.install_name, name, spec)

    def get_merged_map(self) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for definition in self.definitions:
            if definition.generate_secret and definition.generate_secret.format:
                merged[definition.name] = self._secret(definition.name, definition.generate_secret)
            else:
                merged[definition.name] = definition.default

        # Overrides win
        for parameter in self.parameters:
            if parameter.generate_secret and parameter.generate_secret.format:
                merged[parameter.name] = self._secret(parameter.name, parameter.generate_secret)
            else:
                merged[parameter.name] = parameter.value

        return merged

    def get_parameter_desc(self) -> Dict[str, ParameterDesc]:
        """Value/default/description per parameter. Secrets are not resolved."""
        desc: Dict[str, ParameterDesc] = {
            definition.name: ParameterDesc(
                value=definition.default,
                default=definition.default,
                description=definition.description,
            )
            for definition in self.definitions
        }
        for parameter in self.parameters:
            current = desc.get(parameter.name, ParameterDesc(value="", default="", description=""))
            desc[parameter.name] = replace(current, value=parameter.value)
        return desc

    def merge_additional_parameters(self, additional: List[ParameterSpec]) -> List[ParameterSpec]:
        """
        Overlay `additional` onto the install's own overrides.

        Overlapping names take the additional value, new names are appended.
        The manager's own list is left untouched.
        """
        merged = [replace(parameter) for parameter in self.parameters]
        index = {parameter.name: i for i, parameter in enumerate(merged)}

        for extra in additional:
            if extra.name in index:
                merged[index[extra.name]] = replace(
                    merged[index[extra.name]],
                    value=extra.value,
                    generate_secret=extra.generate_secret,
                )
            else:
                index[extra.name] = len(merged)
                merged.append(replace(extra))

        return merged

    def validate(self) -> None:
        """Every required definition needs a non-blank effective value."""
        overrides = {parameter.name: parameter for parameter in self.parameters}
        for definition in self.definitions:
            if not definition.required:
                continue
            if definition.generate_secret and definition.generate_secret.format:
                continue

            override = overrides.get(definition.name)
            if override is not None:
                if override.generate_secret and override.generate_secret.format:
                    continue
                value = override.value
            else:
                value = definition.default

            if not value.strip():
                raise MissingParameterError(definition.name)
