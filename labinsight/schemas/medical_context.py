from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict


class MedicalContextRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    healthParameters: Optional[List[Union[str, Dict[str, Any]]]] = None
    queryType: str = "general"
