from typing import Optional


class DecisionServiceDescription:
    """
    Describes the tool exposing one operation of a decision service.

    Two descriptions are the same tool when their tool names match, and have the
    same input schema when their fingerprints match.

    Attributes:
        tool_name (str): The tool name, unique across the whole tool set.
        title (str, optional): The operation summary.
        description (str, optional): The operation description.
        input_schema (dict): The expanded JSON schema of the operation input.
        input_schema_hash (str): Fingerprint of input_schema.
        deployment_space (str): The deployment space the decision service is deployed to.
        decision_service_id (str): The decision service id.
        operation_id (str): The operation id, unique within the decision service.
    """
    def __init__(self, tool_name: str, input_schema: dict, input_schema_hash: str,
                 deployment_space: str, decision_service_id: str, operation_id: str,
                 title: Optional[str] = None, description: Optional[str] = None):
        self.tool_name = tool_name
        self.title = title
        self.description = description
        self.input_schema = input_schema
        self.input_schema_hash = input_schema_hash
        self.deployment_space = deployment_space
        self.decision_service_id = decision_service_id
        self.operation_id = operation_id

    def same_schema(self, other: "DecisionServiceDescription") -> bool:
        return self.input_schema_hash == other.input_schema_hash

    def same_operation(self, other: "DecisionServiceDescription") -> bool:
        return ((self.deployment_space, self.decision_service_id, self.operation_id)
                == (other.deployment_space, other.decision_service_id, other.operation_id))

    def __repr__(self):
        return (f"DecisionServiceDescription(tool_name={self.tool_name!r}, "
                f"deployment_space={self.deployment_space!r}, "
                f"decision_service_id={self.decision_service_id!r}, operation_id={self.operation_id!r})")
