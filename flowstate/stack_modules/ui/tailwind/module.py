"""Tailwind CSS — wires the stylesheet into whichever framework is selected."""

from __future__ import annotations

from flowstate.core.models.implementation import ModuleImplementation

_VUE_BUTTON = """\
<template>
  <button class="rounded-md bg-indigo-600 px-4 py-2 text-white hover:bg-indigo-500">
    <slot />
  </button>
</template>
"""

_REACT_BUTTON = """\
export default function Button({ children, ...props }) {
  return (
    <button className="rounded-md bg-indigo-600 px-4 py-2 text-white hover:bg-indigo-500" {...props}>
      {children}
    </button>
  )
}
"""


class TailwindImplementation(ModuleImplementation):

    def get_template_files(self, context):
        if "react" in context.modules:
            return {
                "src/main.jsx": "import './style.css'\n",
                "src/components/ui/Button.jsx": _REACT_BUTTON,
            }
        if "vue3" in context.modules:
            return {
                "src/main.js": "import './style.css'\n",
                "src/components/ui/Button.vue": _VUE_BUTTON,
            }
        return {}

    def get_merge_strategy(self, path):
        # Tailwind directives must come before any other stylesheet rules
        if path.endswith(".css"):
            return "prepend"
        return None
