"""JavaScript snippets evaluated inside the page."""

ANNOTATION_CLASS = "playwright-session-annotation"

INTERACTIVE_SELECTOR = (
    'a, button, input, textarea, select, '
    '[role="button"], [role="link"], [role="checkbox"], [role="menuitem"]'
)

# Walks document.body and returns a nested tag outline holding only text and
# interactive elements with their targeting attributes.
COMPACT_DOM_SCRIPT = """
() => {
  const SKIP = ['script', 'style', 'svg', 'noscript', 'meta', 'link', 'iframe'];
  const INTERACTIVE_TAGS = ['a', 'button', 'input', 'select', 'textarea', 'label'];
  const INTERACTIVE_ROLES = ['button', 'link', 'checkbox', 'menuitem'];
  const KEEP_ATTRS = ['name', 'type', 'placeholder', 'aria-label', 'role'];

  function outline(node) {
    if (node.nodeType === Node.TEXT_NODE) {
      const text = node.textContent.trim();
      return text ? text : null;
    }
    if (node.nodeType !== Node.ELEMENT_NODE) return null;

    const tag = node.tagName.toLowerCase();
    if (SKIP.includes(tag)) return null;

    const children = [];
    for (const child of node.childNodes) {
      const rendered = outline(child);
      if (rendered) children.push(rendered);
    }

    const role = node.getAttribute('role');
    const interactive = INTERACTIVE_TAGS.includes(tag) || (role && INTERACTIVE_ROLES.includes(role));
    if (!interactive && children.length === 0) return null;

    let out = `<${tag}`;
    if (node.id) out += ` id="${node.id}"`;
    if (interactive) {
      for (const attr of Array.from(node.attributes)) {
        if (KEEP_ATTRS.includes(attr.name)) out += ` ${attr.name}="${attr.value}"`;
      }
    }
    out += '>';

    if (children.length === 1 && !children[0].includes('\\n') && !children[0].startsWith('<')) {
      out += children[0];
    } else if (children.length > 0) {
      out += '\\n  ' + children.join('\\n').replace(/\\n/g, '\\n  ') + '\\n';
    }
    return out + `</${tag}>`;
  }

  return document.body ? outline(document.body) : null;
}
"""

# Labels each visible interactive element with a numbered badge and returns
# the labelled elements in order (index 0 carries label 1).
ANNOTATE_SCRIPT = """
([selector, badgeClass]) => {
  document.querySelectorAll('.' + badgeClass).forEach((badge) => badge.remove());

  const labelled = [];
  for (const el of document.querySelectorAll(selector)) {
    const rect = el.getBoundingClientRect();
    const visible = rect.width > 0 && rect.height > 0 && window.getComputedStyle(el).visibility !== 'hidden';
    if (!visible) continue;

    labelled.push(el);
    const badge = document.createElement('div');
    badge.textContent = String(labelled.length);
    badge.className = badgeClass;
    Object.assign(badge.style, {
      position: 'absolute',
      top: `${rect.top + window.scrollY}px`,
      left: `${rect.left + window.scrollX}px`,
      background: 'red',
      color: 'white',
      padding: '2px 4px',
      fontSize: '12px',
      fontWeight: 'bold',
      zIndex: '999999',
      pointerEvents: 'none',
      borderRadius: '3px',
      boxShadow: '0 0 2px black',
    });
    document.body.appendChild(badge);
  }
  return labelled;
}
"""

REMOVE_ANNOTATIONS_SCRIPT = """
(badgeClass) => {
  document.querySelectorAll('.' + badgeClass).forEach((badge) => badge.remove());
}
"""

IS_CONNECTED_SCRIPT = "(el) => el.isConnected"

CLICK_ELEMENT_SCRIPT = "(el) => el.click()"

SCROLL_SCRIPT = "(px) => window.scrollBy(0, px)"
