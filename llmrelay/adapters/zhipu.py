from .zai import ZaiAdapter


class ZhipuAdapter(ZaiAdapter):
    """
    Adapter for Zhipu AI's BigModel platform, the mainland China host of the
    GLM models. Same wire format as Z.AI.

    GLM names map to Z.AI by default; use the "zhipu::" namespace to reach
    this endpoint.
    """

    kind = "zhipu"
    default_endpoint = "https://open.bigmodel.cn/api/paas/v4/"
    namespace_endpoint = None
    api_key_env = "ZHIPU_API_KEY"
    base_url_env = "ZHIPU_BASE_URL"
    known_models = (
        "glm-4.5",
        "glm-4.5-x",
        "glm-4.5-air",
        "glm-4.5-airx",
        "glm-4.5-flash",
        "glm-4-32b-0414-128k",
        "glm-4-plus",
        "glm-4-air",
        "glm-4-airx",
        "glm-4-flash",
        "glm-4-long",
        "glm-4v-plus-0111",
        "glm-4v-flash",
        "glm-z1-air",
        "glm-z1-airx",
        "glm-z1-flash",
        "glm-z1-flashx",
        "glm-4.1v-thinking-flash",
        "glm-4.1v-thinking-flashx",
    )
