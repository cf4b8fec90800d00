import json
import logging


class ConfigManager:
    _configurations = {}  # Class-level dictionary to store configurations

    @staticmethod
    def load_config(name, path):
        """
        Loads a JSON build configuration file and registers it under a name.

        :param name: str - Name of the configuration.
        :param path: str - Path to the configuration file.
        """
        try:
            with open(path, 'r') as file:
                ConfigManager._configurations[name] = json.load(file)
        except Exception as e:
            logging.error(f"Failed to load build config {name} from {path}: {e}")
            raise

    @staticmethod
    def set_config(name, config):
        ConfigManager._configurations[name] = config

    @staticmethod
    def get_config(name):
        """
        Retrieves a registered configuration by name.

        :param name: str - Name of the configuration.
        :return: dict - The configuration data or None.
        """
        return ConfigManager._configurations.get(name)

    @staticmethod
    def clear_all_configs():
        ConfigManager._configurations.clear()
