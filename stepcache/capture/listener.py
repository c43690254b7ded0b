"""Page-side scripts for action capture.

The listener is installed both as a context init script (so every new
document gets it) and by direct evaluation into the live document.
Captured events go into a bounded page-local buffer that the host drains.
"""

# Shared by the listener and the page-state snapshot so planner selectors and
# captured selectors have the same shape.
XPATH_JS = r"""
function __stepcacheXPath(el) {
  if (!el || el.nodeType !== 1) return '';
  if (el.id) {
    try {
      var idEsc = String(el.id).replace(/'/g, "''");
      var n = document.evaluate("count(//*[@id='" + idEsc + "'])", document, null,
                                XPathResult.NUMBER_TYPE, null).numberValue;
      if (n === 1) return "//*[@id='" + idEsc + "']";
    } catch (e) {}
  }
  var parts = [];
  var cur = el;
  while (cur && cur.nodeType === 1) {
    var tag = cur.tagName.toLowerCase();
    var idx = 1;
    var sib = cur.previousSibling;
    while (sib) {
      if (sib.nodeType === 1 && sib.tagName && sib.tagName.toLowerCase() === tag) idx++;
      sib = sib.previousSibling;
    }
    parts.unshift(tag + '[' + idx + ']');
    cur = cur.parentNode;
  }
  return parts.length ? '//' + parts.join('/') : '';
}
function __stepcacheSelector(el) {
  var xp = __stepcacheXPath(el);
  return xp ? 'xpath=' + xp : '';
}
"""

BUFFER_LIMIT = 1000
INPUT_DEBOUNCE_MS = 600

LISTENER_SCRIPT = (
    "(function() {\n"
    + XPATH_JS
    + r"""
  var win = window, doc = document;
  var LIMIT = %(limit)d, DEBOUNCE = %(debounce)d;
  if (win.__stepcacheListeners) {
    win.__stepcacheListeners.forEach(function(l) {
      try { doc.removeEventListener(l.type, l.handler, true); } catch (e) {}
    });
  }
  win.__stepcacheListeners = [];
  win.__stepcacheBuffer = win.__stepcacheBuffer || [];
  win.__stepcacheDropped = win.__stepcacheDropped || 0;
  win.__stepcachePending = win.__stepcachePending || {};

  function push(ev) {
    if (win.__stepcacheBuffer.length >= LIMIT) {
      win.__stepcacheBuffer.shift();
      win.__stepcacheDropped++;
    }
    win.__stepcacheBuffer.push(ev);
  }
  function labelOf(t) {
    return (t.labels && t.labels[0] ? (t.labels[0].textContent || '').trim() : '') ||
           t.getAttribute('aria-label') || '';
  }
  function onClick(e) {
    var t = e.target;
    if (!t || t.nodeType !== 1) return;
    var isCheck = t.tagName === 'INPUT' && (t.type === 'checkbox' || t.type === 'radio');
    var label = labelOf(t);
    var text = (t.textContent || '').trim().substring(0, 50);
    var desc = isCheck ? 'Check' : 'Click';
    if (label) desc += ' ' + label;
    else if (text) desc += ' "' + text.substring(0, 30) + '"';
    else if (t.placeholder) desc += ' ' + t.placeholder;
    else if (t.id) desc += ' element #' + t.id;
    else desc += ' ' + t.tagName.toLowerCase() + ' element';
    push({ timestamp: Date.now(), type: 'click', description: desc,
           selector: __stepcacheSelector(t), method: isCheck ? 'check' : 'click', arguments: [] });
  }
  function flushInput(key) {
    var p = win.__stepcachePending[key];
    if (!p) return;
    clearTimeout(p.timer);
    delete win.__stepcachePending[key];
    var t = p.target;
    var value = t.value != null ? String(t.value) : '';
    var where = t.placeholder || labelOf(t) || (t.id ? '#' + t.id : t.tagName.toLowerCase());
    push({ timestamp: Date.now(), type: 'type', description: 'Type "' + value + '" into ' + where,
           selector: __stepcacheSelector(t) || key, method: 'fill', arguments: [value] });
  }
  function onInput(e) {
    var t = e.target;
    if (!t || (t.tagName !== 'INPUT' && t.tagName !== 'TEXTAREA')) return;
    if (t.type === 'checkbox' || t.type === 'radio') return;
    var key = __stepcacheSelector(t) || ('input:' + Date.now());
    var p = win.__stepcachePending[key];
    if (p) clearTimeout(p.timer);
    win.__stepcachePending[key] = {
      target: t, timer: setTimeout(function() { flushInput(key); }, DEBOUNCE)
    };
  }
  function onBlur(e) {
    var t = e.target;
    if (!t || (t.tagName !== 'INPUT' && t.tagName !== 'TEXTAREA')) return;
    var key = __stepcacheSelector(t);
    if (key && win.__stepcachePending[key]) flushInput(key);
  }
  function onChange(e) {
    var t = e.target;
    if (!t || t.tagName !== 'SELECT') return;
    var opt = t.options && t.options[t.selectedIndex];
    var text = opt ? opt.text : t.value;
    var value = opt ? opt.value : t.value;
    var where = labelOf(t) || (t.id ? '#' + t.id : 'dropdown');
    push({ timestamp: Date.now(), type: 'select', description: 'Select "' + (text || '') + '" in ' + where,
           selector: __stepcacheSelector(t), method: 'select', arguments: [value != null ? String(value) : ''] });
  }
  win.__stepcacheFlush = function() {
    Object.keys(win.__stepcachePending).forEach(flushInput);
  };
  [['click', onClick], ['input', onInput], ['blur', onBlur], ['change', onChange]].forEach(function(pair) {
    doc.addEventListener(pair[0], pair[1], true);
    win.__stepcacheListeners.push({ type: pair[0], handler: pair[1] });
  });
  return true;
})()
"""
    % {"limit": BUFFER_LIMIT, "debounce": INPUT_DEBOUNCE_MS}
)

DRAIN_SCRIPT = r"""
() => {
  const events = window.__stepcacheBuffer || [];
  const dropped = window.__stepcacheDropped || 0;
  window.__stepcacheBuffer = [];
  window.__stepcacheDropped = 0;
  return { events, dropped };
}
"""

FLUSH_PENDING_SCRIPT = r"""
() => { if (window.__stepcacheFlush) window.__stepcacheFlush(); return true; }
"""
